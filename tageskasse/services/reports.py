# tageskasse/services/reports.py
from __future__ import annotations

from io import BytesIO

from tageskasse.config import settings as app_settings


def _pdf_set_styles():
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.lib.units import mm
    from reportlab.platypus import SimpleDocTemplate
    styles = getSampleStyleSheet()
    return colors, A4, styles, mm, SimpleDocTemplate


def month_summary_pdf(summary: dict) -> BytesIO:
    """Monatsuebersicht (Ergebnis von admin.month_summary) als A4-PDF."""
    from reportlab.platypus import Paragraph, Spacer, Table, TableStyle
    colors, A4, styles, mm, SimpleDocTemplate = _pdf_set_styles()
    cur = app_settings.CURRENCY

    buf = BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=A4,
                            leftMargin=12*mm, rightMargin=12*mm,
                            topMargin=12*mm, bottomMargin=12*mm)
    grid = [("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
            ("ALIGN", (1, 1), (-1, -1), "RIGHT")]

    story = []
    title = f"{app_settings.APP_NAME}: Monatsuebersicht {summary['month']:02d}/{summary['year']}"
    story.append(Paragraph(title, styles["Title"]))
    story.append(Spacer(1, 6))

    tot = summary["totals"]
    head = [
        ["Erfasste Tage", str(tot["days"])],
        [f"Kasse ({cur})", f"{tot['cash']:.2f}"],
        [f"Netzwerk ({cur})", f"{tot['network']:.2f}"],
        [f"Total ({cur})", f"{tot['total']:.2f}"],
        [f"Einkaeufe ({cur})", f"{tot['purchases']:.2f}"],
        [f"Rest ({cur})", f"{tot['remaining']:.2f}"],
        [f"Vorschuesse ({cur})", f"{tot['advances']:.2f}"],
    ]
    t1 = Table(head, colWidths=[60*mm, 40*mm])
    t1.setStyle(TableStyle(grid))
    story.append(t1)
    story.append(Spacer(1, 8))

    user_rows = [["Benutzer", "Tage", "Total", "Einkaeufe", "Rest", "Vorschuesse", "Abzuege"]]
    for u in summary["users"]:
        user_rows.append([u["username"], str(u["days"]), f"{u['total']:.2f}", f"{u['purchases']:.2f}",
                          f"{u['remaining']:.2f}", f"{u['advances']:.2f}", f"{u['deductions']:.2f}"])
    t2 = Table(user_rows, colWidths=[40*mm, 14*mm, 24*mm, 24*mm, 24*mm, 24*mm, 24*mm], repeatRows=1)
    t2.setStyle(TableStyle(grid))
    story.append(t2)
    story.append(Spacer(1, 8))

    rows = [["Datum", "Benutzer", "Kasse", "Netzwerk", "Total", "Einkaeufe", "Rest", "Vorschuss"]]
    for e in summary["entries"]:
        rows.append([e["date"], e["username"], f"{e['cash_amount']:.2f}", f"{e['network_amount']:.2f}",
                     f"{e['total']:.2f}", f"{e['purchases_amount']:.2f}", f"{e['remaining']:.2f}",
                     f"{e['advance_amount']:.2f}"])
    t3 = Table(rows, colWidths=[22*mm, 32*mm, 20*mm, 20*mm, 20*mm, 22*mm, 20*mm, 20*mm], repeatRows=1)
    t3.setStyle(TableStyle(grid))
    story.append(t3)

    doc.build(story)
    buf.seek(0)
    return buf
