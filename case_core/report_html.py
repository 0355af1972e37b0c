from __future__ import annotations
from html import escape
from typing import Dict, Any, List

from .types import EvaluationResult

_CATEGORY_LABELS = {
    "exam": "Anamnez / Muayene",
    "request": "Tetkik İstemi",
    "treatment": "Tedavi",
    "diagnosis": "Tanı",
}


def _row_category(cat: str, score: Any) -> str:
    return f"<tr><td>{_CATEGORY_LABELS.get(cat, cat)}</td><td>{score}</td></tr>"


def _row_finding(f: Dict[str, Any]) -> str:
    try:
        delta = float(f.get("delta", 0))
    except (TypeError, ValueError):
        delta = 0.0
    sign = "+" if delta > 0 else ""
    cls = "pos" if delta > 0 else ("neg" if delta < 0 else "")
    return (
        f"<tr><td>{escape(str(f.get('category', '')))}</td>"
        f"<td class=\"{cls}\">{sign}{delta:g}</td>"
        f"<td>{escape(str(f.get('reason', '')))}</td></tr>"
    )


def render_report_html(result: Dict[str, Any] | EvaluationResult, title: str = "Vaka Değerlendirmesi") -> str:
    data = result.to_dict() if isinstance(result, EvaluationResult) else dict(result or {})
    cats = data.get("categories") or {}
    findings: List[Dict[str, Any]] = [f for f in (data.get("findings") or []) if isinstance(f, dict)]
    dx = data.get("diagnosis") or {}
    meta = data.get("meta") or {}

    rows = "\n".join(_row_category(c, v) for c, v in cats.items())
    frows = "\n".join(_row_finding(f) for f in findings) or "<tr><td colspan=\"3\">Bulgu yok.</td></tr>"

    verdict = "Doğru" if dx.get("isCorrect") else "Yanlış"
    dx_html = (
        f"<p><b>Tanı:</b> {escape(str(dx.get('input', '')))} "
        f"(beklenen: {escape(str(dx.get('expected', '')))}) · {verdict}</p>"
    )
    meta_bits = []
    if meta.get("caseId"):
        meta_bits.append(f"Vaka: {escape(str(meta['caseId']))}")
    if meta.get("userId"):
        meta_bits.append(f"Kullanıcı: {escape(str(meta['userId']))}")
    if meta.get("bestScore") is not None:
        meta_bits.append(f"En iyi skor: {meta['bestScore']}")
    meta_html = f"<p class=\"meta\">{' | '.join(meta_bits)}</p>" if meta_bits else ""

    return f"""<!doctype html>
<html lang="tr">
<head>
<meta charset="utf-8"/>
<title>{escape(title)}</title>
<style>
 body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Ubuntu,'Helvetica Neue',Arial}}
 .wrap{{max-width:960px;margin:40px auto;padding:0 16px}}
 table{{border-collapse:collapse;width:100%;margin:12px 0}}
 th,td{{text-align:left;padding:6px;border:1px solid #ddd}}
 .pos{{color:#17803d}} .neg{{color:#b42318}}
 .total{{font-size:1.4rem}}
</style>
</head>
<body>
<div class="wrap">
  <h1>{escape(title)}</h1>
  {meta_html}
  <div class="total"><b>Toplam:</b> {data.get('total', '')}</div>
  <p><b>Hız bonusu:</b> +{data.get('speedBonus', 0)}</p>
  {dx_html}
  <h3>Kategoriler</h3>
  <table><thead><tr><th>Kategori</th><th>Skor</th></tr></thead><tbody>{rows}</tbody></table>
  <h3>Bulgular</h3>
  <table><thead><tr><th>Kategori</th><th>Δ</th><th>Gerekçe</th></tr></thead><tbody>{frows}</tbody></table>
</div>
</body>
</html>"""


def export_report_html(result: Dict[str, Any] | EvaluationResult, path: str, title: str = "Vaka Değerlendirmesi") -> str:
    html = render_report_html(result, title=title)
    with open(path, "w", encoding="utf-8") as f:
        f.write(html)
    return path


__all__ = ["render_report_html", "export_report_html"]
