from __future__ import annotations

from html import escape as _escape
from typing import Optional

from mailsafe.config import settings
from mailsafe.document import PRESENTATION_ROLE, SHELL_CLASS


def _build_head() -> str:
    return (
        "<head>\n"
        '<meta charset="UTF-8">\n'
        '<meta http-equiv="X-UA-Compatible" content="IE=edge">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        '<meta name="x-apple-disable-message-reformatting">\n'
        "<!--[if mso]>\n"
        "<noscript>\n"
        "<xml>\n"
        "<o:OfficeDocumentSettings>\n"
        "<o:PixelsPerInch>96</o:PixelsPerInch>\n"
        "</o:OfficeDocumentSettings>\n"
        "</xml>\n"
        "</noscript>\n"
        "<style>\n"
        "table {border-collapse: collapse;}\n"
        "td {vertical-align: top;}\n"
        "</style>\n"
        "<![endif]-->\n"
        "</head>\n"
    )


def _build_cell_style(font_family: str, font_size_px: int, line_height: str) -> str:
    return (
        "vertical-align:top; text-align:left; "
        f"font-family:{font_family}; font-size:{font_size_px}px; "
        f"line-height:{line_height}; mso-line-height-rule:exactly; color:#000000;"
    )


def wrap_in_email_template(
    content: str,
    *,
    font_family: Optional[str] = None,
    font_size_px: Optional[int] = None,
    line_height: Optional[str] = None,
) -> str:
    """Wrap a body fragment in a complete, Outlook-friendly HTML document.

    Base typography sits on an outer presentation table cell rather than only
    on ``<body>``; Outlook's Word engine does not reliably inherit from body.
    基本のタイポグラフィは<body>だけでなく外側の表セルに設定する。OutlookのWordエンジンはbodyからの継承が安定しないため。
    """
    cell_style = _build_cell_style(
        font_family or settings.template_font_family,
        font_size_px if font_size_px is not None else settings.template_font_size_px,
        line_height or settings.template_line_height,
    )
    return (
        "<!DOCTYPE html>\n"
        '<html xmlns="http://www.w3.org/1999/xhtml" '
        'xmlns:v="urn:schemas-microsoft-com:vml" '
        'xmlns:o="urn:schemas-microsoft-com:office:office">\n'
        + _build_head()
        + '<body style="margin:0; padding:0; -webkit-text-size-adjust:100%; '
        '-ms-text-size-adjust:100%; background:#ffffff;">\n'
        f'<table class="{SHELL_CLASS}" role="{PRESENTATION_ROLE}" cellpadding="0" '
        'cellspacing="0" border="0" width="100%" '
        'style="border-collapse:collapse; mso-table-lspace:0pt; mso-table-rspace:0pt; '
        'width:100%; background:#ffffff;">\n'
        "<tr>\n"
        f'<td align="left" valign="top" style="{_escape(cell_style, quote=True)}">\n'
        + content
        + "\n</td>\n"
        "</tr>\n"
        "</table>\n"
        "</body>\n"
        "</html>\n"
    )
