from __future__ import annotations
from html import escape
from typing import List

from .config import SYSTEM_NAME
from .dimensions import PRODUCT_LABELS, dimension_names
from .types import DiagnosticRecord

_STATUS_CLASS = {
    "CRÍTICO": "critical",
    "ALERTA": "alert",
    "ESTABLE": "stable",
    "EXCELENTE": "stable",
}


def product_label(product: str) -> str:
    return PRODUCT_LABELS.get(product, product)


def report_subject(record: DiagnosticRecord) -> str:
    return f"ASH Diagnóstico - Resultados de {product_label(record.product)}"


def _ordered_scores(record: DiagnosticRecord) -> List[tuple]:
    names = [n for n in dimension_names(record.product) if n in record.dimension_scores]
    names += [n for n in record.dimension_scores if n not in names]
    return [(n, record.dimension_scores[n]) for n in names]


def _row(name: str, value: float) -> str:
    return f"<tr><td>{escape(name)}</td><td>{value:.1f}</td></tr>"


def render_report_html(record: DiagnosticRecord) -> str:
    label = escape(product_label(record.product))
    when = record.created_at.strftime("%d/%m/%Y %H:%M")
    status = record.status.value
    rows = "\n".join(_row(n, v) for n, v in _ordered_scores(record))

    findings_html = ""
    if record.findings:
        items = "".join(
            f"<li><b>{escape(f.dimension)}</b> ({f.score:.1f}, {escape(f.severity)}): {escape(f.text)}</li>"
            for f in record.findings
        )
        findings_html = f"<h3>Hallazgos clave</h3><ul>{items}</ul>"

    recs_html = ""
    if record.recommendations:
        items = "".join(f"<li>{escape(r)}</li>" for r in record.recommendations)
        recs_html = f"<h3>Recomendaciones</h3><ul>{items}</ul>"

    return f"""<!doctype html>
<html lang="es">
<head>
<meta charset="utf-8"/>
<title>ASH Diagnóstico - Resultados</title>
<style>
 body{{font-family:Inter,Arial,sans-serif;line-height:1.6;color:#1a1a1a;background:#f8f9fa;margin:0;padding:20px}}
 .wrap{{max-width:600px;margin:0 auto;background:#fff;border-radius:16px;overflow:hidden}}
 .head{{background:#1a1a1a;color:#fff;padding:32px 24px;text-align:center}}
 .body{{padding:32px 24px}}
 .summary{{background:#f8f9fa;border-radius:12px;padding:20px;margin-bottom:24px;border-left:4px solid #d4af37}}
 .status-critical{{color:#991b1b}}
 .status-alert{{color:#92400e}}
 .status-stable{{color:#065f46}}
 table{{border-collapse:collapse;width:100%}}
 th,td{{text-align:left;padding:6px}}
 .foot{{background:#f8f9fa;padding:20px;text-align:center;font-size:12px;color:#6c757d}}
</style>
</head>
<body>
<div class="wrap">
  <div class="head">
    <div style="font-size:28px;letter-spacing:2px">ASH</div>
    <h1 style="font-weight:400;margin:0">Snapshot Ejecutivo</h1>
    <p>{label} - {when}</p>
  </div>
  <div class="body">
    <p>Se ha completado el diagnóstico de <strong>{label}</strong>.</p>
    <div class="summary">
      <p><b>Promedio Global:</b> {record.overall_average:.1f}/5.0</p>
      <p><b>Estado del Sistema:</b> <span class="status-{_STATUS_CLASS.get(status, 'stable')}">{escape(status)}</span></p>
      <p><b>Prioridad de Intervención:</b> {escape(record.priority.value)}</p>
      <p><b>Cliente:</b> {escape(record.client_email)}</p>
      <p><b>Diagnóstico:</b> {escape(record.id)} (#{record.numeric_id})</p>
    </div>
    <table border='1' cellpadding='6' cellspacing='0'>
      <thead><tr><th>Dimensión</th><th>Puntuación</th></tr></thead>
      <tbody>{rows}</tbody>
    </table>
    {findings_html}
    {recs_html}
  </div>
  <div class="foot">{escape(SYSTEM_NAME)}. Correo automático, por favor no responder.</div>
</div>
</body>
</html>"""


def render_report_text(record: DiagnosticRecord) -> str:
    lines = [
        report_subject(record),
        "",
        f"Diagnóstico: {record.id} (#{record.numeric_id})",
        f"Fecha: {record.created_at.strftime('%d/%m/%Y %H:%M')}",
        f"Cliente: {record.client_email}",
        f"Promedio Global: {record.overall_average:.1f}/5.0",
        f"Estado del Sistema: {record.status.value}",
        f"Prioridad de Intervención: {record.priority.value}",
        "",
        "Puntuaciones:",
    ]
    lines += [f"  - {n}: {v:.1f}" for n, v in _ordered_scores(record)]
    if record.findings:
        lines += ["", "Hallazgos clave:"]
        lines += [f"  - {f.dimension} ({f.score:.1f}, {f.severity}): {f.text}" for f in record.findings]
    if record.recommendations:
        lines += ["", "Recomendaciones:"]
        lines += [f"  - {r}" for r in record.recommendations]
    return "\n".join(lines) + "\n"
