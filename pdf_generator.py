"""
Module pour la génération des factures au format PDF
Utilise reportlab pour créer des PDF structurés et formatés
"""

import io
from typing import Dict, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from dates import format_date
from finance import format_currency, invoice_totals

COMPANY_NAME = "FleetManager"
COMPANY_TAGLINE = "Gestion de flotte professionnelle"

DOCUMENT_TITLES = {
    "facture": "Facture",
    "avoir": "Avoir",
    "proforma": "Facture proforma",
}

PRIMARY_COLOR = colors.HexColor("#0ea5e9")


def _p(text) -> str:
    return escape(str(text if text is not None else ""))


def create_facture_pdf(facture: Dict, client: Optional[Dict] = None) -> bytes:
    """
    Génère le PDF d'une facture

    Args:
        facture: document facture (numero, dates, lignes, totaux, paiements)
        client: document client facturé (optionnel)

    Returns:
        bytes: Contenu du PDF généré
    """
    buffer = io.BytesIO()

    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=2*cm,
        leftMargin=2*cm,
        topMargin=2*cm,
        bottomMargin=2*cm,
        title=f"{DOCUMENT_TITLES.get(facture.get('type'), 'Facture')} {facture.get('numero', '')}",
    )

    styles = getSampleStyleSheet()

    company_style = ParagraphStyle(
        'Company',
        parent=styles['Heading1'],
        fontSize=20,
        fontName='Helvetica-Bold',
        textColor=PRIMARY_COLOR,
        spaceAfter=2,
    )
    normal_style = ParagraphStyle(
        'InvoiceNormal',
        parent=styles['Normal'],
        fontSize=10,
        spaceAfter=3,
        alignment=TA_LEFT,
        fontName='Helvetica',
    )
    right_style = ParagraphStyle('InvoiceRight', parent=normal_style, alignment=TA_RIGHT)
    heading_style = ParagraphStyle(
        'InvoiceHeading',
        parent=styles['Heading2'],
        fontSize=12,
        spaceBefore=14,
        spaceAfter=6,
        fontName='Helvetica-Bold',
    )
    footer_style = ParagraphStyle(
        'Footer',
        parent=styles['Normal'],
        fontSize=9,
        alignment=TA_CENTER,
        textColor=colors.grey,
    )

    # Les totaux sont recalculés à partir des lignes pour rester cohérents
    totals = invoice_totals(facture.get('lignes') or [])
    title = DOCUMENT_TITLES.get(facture.get('type'), 'Facture')

    story = []

    # En-tête : société à gauche, numéro et dates à droite
    header_right = [
        Paragraph(f"<b>{_p(title)} N° {_p(facture.get('numero'))}</b>", right_style),
        Paragraph(f"Date d'émission: {format_date(facture.get('dateEmission'))}", right_style),
    ]
    if facture.get('dateEcheance'):
        header_right.append(Paragraph(f"Date d'échéance: {format_date(facture.get('dateEcheance'))}", right_style))
    header = Table(
        [[[Paragraph(COMPANY_NAME, company_style), Paragraph(COMPANY_TAGLINE, normal_style)], header_right]],
        colWidths=[8.5*cm, 8.5*cm],
    )
    header.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
    story.append(header)
    story.append(Spacer(1, 20))

    # Client
    story.append(Paragraph("Facturé à:", heading_style))
    if client:
        story.append(Paragraph(f"<b>{_p(client.get('nom'))}</b>", normal_style))
        if client.get('adresse'):
            story.append(Paragraph(_p(client['adresse']), normal_style))
        city_line = " ".join(x for x in (client.get('codePostal'), client.get('ville')) if x)
        if city_line:
            story.append(Paragraph(_p(city_line), normal_style))
        if client.get('pays'):
            story.append(Paragraph(_p(client['pays']), normal_style))
        if client.get('email'):
            story.append(Paragraph(f"Email: {_p(client['email'])}", normal_style))
        if client.get('telephone'):
            story.append(Paragraph(f"Tél: {_p(client['telephone'])}", normal_style))
        if client.get('numeroTVA'):
            story.append(Paragraph(f"N° TVA: {_p(client['numeroTVA'])}", normal_style))
    else:
        story.append(Paragraph("Client inconnu", normal_style))
    story.append(Spacer(1, 16))

    # Lignes
    rows = [['Description', 'Quantité', 'Prix unitaire', 'TVA', 'Total HT']]
    for ligne in totals['lignes']:
        description = _p(ligne.get('description'))
        if ligne.get('remise'):
            description += f" <font color='grey'>(remise {ligne['remise']:g}%)</font>"
        rows.append([
            Paragraph(description, normal_style),
            f"{float(ligne.get('quantite') or 0):g}",
            format_currency(ligne.get('prixUnitaire')),
            f"{float(ligne.get('tva') or 0):g}%",
            format_currency(ligne['total']),
        ])
    table = Table(rows, colWidths=[7*cm, 2*cm, 3*cm, 1.6*cm, 3.4*cm], repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), PRIMARY_COLOR),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor("#f3f4f6")]),
        ('LINEBELOW', (0, 0), (-1, -1), 0.25, colors.lightgrey),
    ]))
    story.append(table)
    story.append(Spacer(1, 16))

    # Totaux
    totals_rows = [
        ['Total HT:', format_currency(totals['totalHT'])],
        ['Total TVA:', format_currency(totals['totalTVA'])],
        ['Total TTC:', format_currency(totals['totalTTC'])],
    ]
    montant_paye = float(facture.get('montantPaye') or 0)
    if montant_paye > 0:
        totals_rows.append(['Montant payé:', format_currency(montant_paye)])
        restant = max(totals['totalTTC'] - montant_paye, 0)
        if restant > 0:
            totals_rows.append(['Reste à payer:', format_currency(restant)])
    totals_table = Table(totals_rows, colWidths=[4*cm, 4*cm], hAlign='RIGHT')
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, 2), (-1, 2), 'Helvetica-Bold'),
        ('LINEABOVE', (0, 2), (-1, 2), 0.75, colors.black),
        ('TEXTCOLOR', (0, 2), (-1, 2), PRIMARY_COLOR),
    ]))
    story.append(totals_table)

    # Conditions et notes
    if facture.get('conditionsPaiement') or facture.get('notes'):
        story.append(Spacer(1, 20))
        if facture.get('conditionsPaiement'):
            story.append(Paragraph(f"<b>Conditions de paiement:</b> {_p(facture['conditionsPaiement'])}", normal_style))
        if facture.get('notes'):
            story.append(Paragraph(f"<b>Notes:</b> {_p(facture['notes'])}", normal_style))

    story.append(Spacer(1, 40))
    story.append(Paragraph(f"{COMPANY_NAME} - {COMPANY_TAGLINE}", footer_style))
    story.append(Paragraph("Merci de votre confiance!", footer_style))

    doc.build(story)

    pdf_data = buffer.getvalue()
    buffer.close()

    return pdf_data
