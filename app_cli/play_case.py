from __future__ import annotations
import os, datetime, sys
from case_core.case_bank import load_cases, find_case, featured_case_id, section_keys, KEYED_SECTIONS
from case_core.engine import CaseSession
from case_core.report_html import export_report_html
from case_core.types import EXAM_SECTIONS

MENU = [*KEYED_SECTIONS, "drugs", *sorted(EXAM_SECTIONS), "disposition", "diagnosis"]

def ask(prompt: str, options=None) -> str:
    if options:
        print(prompt)
        for i,opt in enumerate(options): print(f"  [{i}] {opt}")
        while True:
            v = input("Seçiminiz (index): ").strip()
            if v.isdigit() and int(v) < len(options): return options[int(v)]
            print("Listeden bir numara girin.")
    else:
        return input(prompt + " ").strip()

def main():
    data = load_cases()
    case_id = sys.argv[1] if len(sys.argv) > 1 else featured_case_id(data)
    case = find_case(data, case_id)
    if case is None:
        print(f"Vaka bulunamadı: {case_id}"); return
    user = os.getenv("CASE_USER", "cli")
    session = CaseSession(case, user)
    print(f"{case.get('title', case_id)}\n{case.get('story', '')}\n")
    print(f"En iyi skor: {session.manager.best_score}  Deneme: {session.manager.attempts}")
    while not session.finished:
        section = ask(f"\nSkor: {session.manager.current_score}. Ne yapmak istersiniz?", MENU)
        try:
            if section in KEYED_SECTIONS:
                key = ask("İstem:", section_keys(case, section) + ["(diğer)"])
                if key == "(diğer)": key = ask("İstem adı:")
                out = session.request(section, key)
                print(f"{out['result']}  ({out['scoreDelta']:+g})")
            elif section == "drugs":
                names = [d.get("name") for d in case.get("drugs") or []]
                if not names: print("Bu vakada ilaç tanımlı değil."); continue
                name = ask("İlaç:", names); dose = ask("Doz:")
                print(session.give_drug(name, dose)["result"])
            elif section in EXAM_SECTIONS:
                session.record_choice(section, ask("Başlık:"))
            elif section == "disposition":
                print(session.set_disposition(ask("Plan:")))
            else:
                print(session.submit_diagnosis(ask("Tanınız:"))["message"])
        except ValueError as exc:
            print(f"Geçersiz: {exc}")
    res = session.evaluation.to_dict()
    res["meta"] = {"caseId": session.case_id, "userId": user, "bestScore": session.manager.best_score}
    print(f"Toplam: {res['total']}  Kategoriler: {res['categories']}")
    os.makedirs("reports", exist_ok=True)
    ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    path = export_report_html(res, os.path.join("reports", f"report_{session.case_id}_{ts}.html"))
    print(f"Rapor kaydedildi: {path}")
if __name__ == "__main__": main()
