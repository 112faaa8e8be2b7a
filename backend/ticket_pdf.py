"""
PDF receipt for an order: restaurant header, order info, status,
line items (dish, qty, unit price, subtotal) and totals.
"""
from decimal import Decimal
from io import BytesIO

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas as pdf_canvas

import config

STATUS_LABELS = {
    'pending': 'Pending',
    'in_progress': 'In preparation',
    'completed': 'Served',
    'cancelled': 'Cancelled',
}


def _money(value) -> str:
    return f'${Decimal(value):.2f}'


def render_order_ticket(order) -> bytes:
    """
    order: Order with user, table and details (with dish) loaded.
    """
    buf = BytesIO()
    c = pdf_canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    left = 50
    right = width - 50
    y = height - 50

    c.setFont('Helvetica-Bold', 20)
    c.drawCentredString(width / 2, y, config.RESTAURANT_NAME)
    y -= 16
    c.setFont('Helvetica', 9)
    for line in (config.RESTAURANT_ADDRESS, config.RESTAURANT_PHONE):
        if line:
            c.drawCentredString(width / 2, y, line[:90])
            y -= 12
    y -= 14

    c.setFont('Helvetica-Bold', 12)
    c.drawString(left, y, f'Order #{order.id}')
    y -= 14
    c.setFont('Helvetica', 10)
    if order.created_at:
        c.drawString(left, y, f'Date: {order.created_at.strftime("%Y-%m-%d %H:%M")}')
        y -= 12
    table_number = order.table.number if order.table else order.table_id
    c.drawString(left, y, f'Table: {table_number}')
    y -= 12
    c.drawString(left, y, f'Served by: {order.user.name if order.user else "N/A"}')
    y -= 12
    c.drawString(left, y, f'Status: {STATUS_LABELS.get(order.status, order.status)}')
    y -= 16

    c.line(left, y, right, y)
    y -= 18

    c.setFont('Helvetica-Bold', 10)
    c.drawString(left, y, 'Dish')
    c.drawRightString(360, y, 'Qty')
    c.drawRightString(450, y, 'Price')
    c.drawRightString(right, y, 'Subtotal')
    y -= 14
    c.setFont('Helvetica', 10)

    subtotal = Decimal('0')
    for detail in order.details:
        name = detail.dish.name if detail.dish else f'Dish {detail.dish_id}'
        line_total = Decimal(detail.price) * detail.quantity
        subtotal += line_total
        c.drawString(left, y, name[:45])
        c.drawRightString(360, y, str(detail.quantity))
        c.drawRightString(450, y, _money(detail.price))
        c.drawRightString(right, y, _money(line_total))
        y -= 14
        if y < 120:
            c.showPage()
            y = height - 50
            c.setFont('Helvetica', 10)

    y -= 4
    c.line(left, y, right, y)
    y -= 16

    total = order.total if order.total is not None else subtotal
    c.drawRightString(450, y, 'Subtotal:')
    c.drawRightString(right, y, _money(subtotal))
    y -= 14
    c.setFont('Helvetica-Bold', 11)
    c.drawRightString(450, y, 'Total:')
    c.drawRightString(right, y, _money(total))
    y -= 30

    c.setFont('Helvetica', 9)
    c.drawCentredString(width / 2, y, 'Thank you for your visit!')
    if config.RESTAURANT_WEBSITE:
        y -= 12
        c.drawCentredString(width / 2, y, config.RESTAURANT_WEBSITE)

    c.showPage()
    c.save()
    buf.seek(0)
    return buf.getvalue()
