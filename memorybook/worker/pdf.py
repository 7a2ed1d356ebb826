"""
HTML to PDF rendering.
"""

PAGE_CSS = """
@page {
    size: A4;
    margin: 20mm 15mm 20mm 15mm;
}
"""


def render_pdf(html: str) -> bytes:
    """Render an HTML document to A4 PDF bytes with print margins.

    Backgrounds are printed. WeasyPrint is imported on first use since it
    loads native Pango/Cairo libraries.
    """
    from weasyprint import CSS, HTML

    return HTML(string=html).write_pdf(stylesheets=[CSS(string=PAGE_CSS)])
