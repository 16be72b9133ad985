import base64
from io import BytesIO
from typing import Optional

import qrcode

from app.core.config import settings


def render_qr_data_url(token: str, box_size: Optional[int] = None) -> str:
    """Render a credential token as a PNG data URL for the student app."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size or settings.qr_code_size,
        border=2,
    )
    qr.add_data(token)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = BytesIO()
    img.save(buffered, format="PNG")
    qr_base64 = base64.b64encode(buffered.getvalue()).decode()
    return f"data:image/png;base64,{qr_base64}"
