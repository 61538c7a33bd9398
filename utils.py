# utils.py
import datetime
import logging

import pandas as pd

from models import Order
from pricing import round2

# For PDF generation
try:
    from reportlab.lib.pagesizes import letter
    from reportlab.lib import colors
    from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
    from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
    from reportlab.lib.units import inch
    REPORTLAB_AVAILABLE = True
except ImportError:
    REPORTLAB_AVAILABLE = False

logger = logging.getLogger("storefront.utils")

REPORT_COLUMNS = ['order_id', 'created_at', 'status', 'items', 'quantity',
                  'items_total', 'delivery_fee', 'grand_total', 'city']


def _receipt_lines(order: Order):
    """(name, qty, price, line total) per ordered item."""
    lines = []
    for it in order.items:
        name = it.get('name', '')
        if it.get('size'):
            name = f"{name} ({it['size']})"
        price = round2(it.get('price', 0))
        qty = int(it.get('quantity', 0))
        lines.append((name, qty, price, round2(it.get('subtotal', price * qty))))
    return lines


def generate_txt_receipt(order: Order, file_path: str, currency="₹"):
    """Write a plain text receipt for a placed order."""
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(f"Order: {order.id}\n")
        f.write(f"Date: {order.created_at or datetime.datetime.now().isoformat(timespec='seconds')}\n")
        f.write("-" * 40 + "\n")
        f.write("Item                    QTY    Price    Total\n")
        for name, qty, price, line in _receipt_lines(order):
            f.write(f"{name[:22]:22} {qty:4}  {currency}{price:7.2f} {currency}{line:8.2f}\n")
        f.write("-" * 40 + "\n")
        f.write(f"Items total:   {currency}{order.items_total:9.2f}\n")
        f.write(f"Delivery fee:  {currency}{order.delivery_fee:9.2f}\n")
        if order.other_charges:
            f.write(f"Other charges: {currency}{order.other_charges:9.2f}\n")
        f.write(f"Grand total:   {currency}{order.grand_total:9.2f}\n")
        f.write(f"Payment:       {order.payment_method}\n")
        if order.shipping_address:
            a = order.shipping_address
            f.write("-" * 40 + "\n")
            f.write(f"Ship to: {a.full_name}, {a.phone}\n")
            f.write(f"         {a.address_line1} {a.address_line2}\n".rstrip() + "\n")
            f.write(f"         {a.city}, {a.state} {a.zip_code}\n")
        f.write("-" * 40 + "\n")
        f.write("Thank you for your order!\n")
    return file_path


def generate_pdf_receipt(order: Order, file_path: str, currency="₹"):
    """Generate a PDF receipt for a placed order using ReportLab."""
    if not REPORTLAB_AVAILABLE:
        raise ImportError("ReportLab is not installed. Cannot generate PDF.")

    doc = SimpleDocTemplate(file_path, pagesize=letter)
    elements = []

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name='RightAlign',
        parent=styles['Normal'],
        alignment=2,  # 2 is right alignment
    ))

    elements.append(Paragraph("Order Receipt", styles['Heading1']))
    elements.append(Paragraph(f"Order: {order.id}", styles['Normal']))
    if order.created_at:
        elements.append(Paragraph(f"Date: {order.created_at}", styles['Normal']))
    elements.append(Spacer(1, 0.2 * inch))

    data = [["Item", "Quantity", "Price", "Total"]]
    for name, qty, price, line in _receipt_lines(order):
        data.append([name, str(qty), f"{currency}{price:.2f}", f"{currency}{line:.2f}"])

    data.append(["" for _ in range(4)])
    data.append(["Items total:", "", "", f"{currency}{order.items_total:.2f}"])
    data.append(["Delivery fee:", "", "", f"{currency}{order.delivery_fee:.2f}"])
    data.append(["Other charges:", "", "", f"{currency}{order.other_charges:.2f}"])
    data.append(["Grand total:", "", "", f"{currency}{order.grand_total:.2f}"])
    data.append(["Payment Method:", order.payment_method, "", ""])

    table = Table(data, colWidths=[2.5*inch, 1*inch, 1*inch, 1*inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (3, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (3, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (3, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (3, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (3, 0), 12),
        ('BOTTOMPADDING', (0, 0), (3, 0), 12),
        ('BACKGROUND', (0, 1), (3, -1), colors.white),
        ('GRID', (0, 0), (-1, -7), 1, colors.black),
        ('ALIGN', (1, 1), (3, -1), 'RIGHT'),
        ('FONTNAME', (0, -5), (3, -1), 'Helvetica-Bold'),
    ]))
    elements.append(table)
    elements.append(Spacer(1, 0.5 * inch))

    if order.shipping_address:
        a = order.shipping_address
        elements.append(Paragraph("Shipping Address", styles['Heading2']))
        elements.append(Paragraph(f"{a.full_name}, {a.phone}", styles['Normal']))
        elements.append(Paragraph(f"{a.address_line1} {a.address_line2}".strip(), styles['Normal']))
        elements.append(Paragraph(f"{a.city}, {a.state} {a.zip_code}", styles['Normal']))
        elements.append(Spacer(1, 0.3 * inch))

    elements.append(Paragraph("Thank you for your order!", styles['RightAlign']))
    doc.build(elements)
    return file_path


def orders_dataframe(orders) -> pd.DataFrame:
    rows = [{
        'order_id': o.id,
        'created_at': o.created_at,
        'status': o.status,
        'items': len(o.items),
        'quantity': sum(int(it.get('quantity', 0)) for it in o.items),
        'items_total': float(o.items_total),
        'delivery_fee': float(o.delivery_fee),
        'grand_total': float(o.grand_total),
        'city': o.shipping_address.city if o.shipping_address else '',
    } for o in orders]
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def generate_orders_report(orders, status=None):
    """
    Build an orders DataFrame and summary, optionally for one status.
    Revenue excludes cancelled orders.
    """
    df = orders_dataframe(orders)
    if status:
        df = df[df['status'] == status]
    if df.empty:
        return df, {'num_orders': 0, 'revenue': 0.0, 'by_status': {}}

    active = df[df['status'] != 'Cancelled']
    summary = {
        'num_orders': len(df),
        'revenue': round(float(active['grand_total'].sum()), 2),
        'average_order': round(float(active['grand_total'].mean()), 2) if not active.empty else 0.0,
        'by_status': df['status'].value_counts().to_dict(),
    }
    return df, summary


def export_orders(orders, file_path: str, format='csv'):
    """Dump orders to CSV or Excel."""
    df = orders_dataframe(orders)
    if format.lower() == 'excel':
        try:
            df.to_excel(file_path, index=False, sheet_name='Orders')
        except Exception as e:
            raise Exception(f"Failed to export to Excel: {str(e)}")
    else:
        df.to_csv(file_path, index=False)
    logger.info(f"Exported {len(df)} orders to {file_path}")
    return file_path
