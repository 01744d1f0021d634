# tributestream/qr_generator.py

import io
import logging
import os

import qrcode
from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

QR_SIZE = 600
CAPTION_HEIGHT = 120
CAPTION_MARGIN = 20
FONT_SIZE = 36
MAX_CAPTION_LINES = 2

SYSTEM_FONTS = [
    '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
    '/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf',
    '/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf',
    '/System/Library/Fonts/Helvetica.ttc',
    'C:\\Windows\\Fonts\\arial.ttf',
]


def get_caption_font(size=FONT_SIZE):
    """First available system TrueType font, else Pillow's default"""
    for font_path in SYSTEM_FONTS:
        if os.path.exists(font_path):
            try:
                return ImageFont.truetype(font_path, size)
            except OSError:
                continue
    logger.warning("⚠️ No TrueType font found, using default font")
    return ImageFont.load_default()


def wrap_caption(draw, text, font, max_width, max_lines=MAX_CAPTION_LINES):
    """Split text into lines that fit max_width; extra lines are cut with '...'"""
    lines = []
    current_line = ""
    for word in text.split():
        test_line = f"{current_line} {word}" if current_line else word
        bbox = draw.textbbox((0, 0), test_line, font=font)
        if bbox[2] - bbox[0] <= max_width:
            current_line = test_line
        else:
            if current_line:
                lines.append(current_line)
            current_line = word
    if current_line:
        lines.append(current_line)

    if len(lines) > max_lines:
        lines = lines[:max_lines]
        lines[-1] = lines[-1][:25] + "..."
    return lines


def create_memorial_qr(link_url, caption=""):
    """PNG bytes of a QR code for link_url with an optional caption below"""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=15,
        border=4,
    )
    qr.add_data(link_url)
    qr.make(fit=True)

    qr_img = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    qr_img = qr_img.resize((QR_SIZE, QR_SIZE), Image.LANCZOS)
    final_img = qr_img

    if caption.strip():
        final_img = Image.new('RGB', (QR_SIZE, QR_SIZE + CAPTION_HEIGHT + CAPTION_MARGIN), 'white')
        final_img.paste(qr_img, (0, 0))
        draw = ImageDraw.Draw(final_img)
        font = get_caption_font()

        y_offset = QR_SIZE + CAPTION_MARGIN
        for line in wrap_caption(draw, caption.strip(), font, QR_SIZE - 40):
            bbox = draw.textbbox((0, 0), line, font=font)
            text_x = (QR_SIZE - (bbox[2] - bbox[0])) // 2
            draw.text((text_x, y_offset), line, font=font, fill='black')
            y_offset += FONT_SIZE + 10

    output = io.BytesIO()
    final_img.save(output, format='PNG', optimize=True)
    logger.info(f"✅ QR code generated for {link_url}")
    return output.getvalue()
