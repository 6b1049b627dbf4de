from __future__ import annotations

import io

import qrcode
from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder


def kb_pay_link(url: str) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="💳 Pay now", url=url)
    b.adjust(1)
    return b.as_markup()


def qr_png(data: str) -> bytes:
    qr_img = qrcode.make(data)
    buf = io.BytesIO()
    qr_img.save(buf, format="PNG")
    return buf.getvalue()
