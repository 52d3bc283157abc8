"""
EPUB generation: one chapter per recognized page.

E-book readers reflow text themselves, so chapters are built straight from
the recognition results without going through the layout engine.
"""

import html
import io
import logging
import uuid
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from .config import DEFAULT_EPUB_CSS
from .ocr import RecognitionResult
from .storage import OutputStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chapter:
    """A logical e-book unit built from one non-empty page."""

    title: str
    html_body: str


def paragraphs_to_html(text: str) -> str:
    """Escape text and wrap each non-blank line in a paragraph."""
    return "".join(
        f"<p>{html.escape(line.strip())}</p>"
        for line in text.split("\n")
        if line.strip()
    )


def build_chapters(
    results: Sequence[RecognitionResult],
    title_format: str = "Page {number}",
) -> list[Chapter]:
    """One chapter per result with non-blank text, in page order.

    Args:
        results: Recognition results, ascending by page_index
        title_format: Chapter title; '{number}' is replaced by page_index + 1

    Returns:
        Chapters
    """
    chapters = []
    for result in results:
        content = (result.text or "").strip()
        if not content:
            continue
        title = title_format.format(number=result.page_index + 1)
        body = f"<h2>{html.escape(title)}</h2>{paragraphs_to_html(content)}"
        chapters.append(Chapter(title=title, html_body=body))
    return chapters


CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
    <rootfiles>
        <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
    </rootfiles>
</container>"""

XHTML_PAGE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" xml:lang="{language}">
<head>
    <meta charset="UTF-8"/>
    <title>{title}</title>
    <link rel="stylesheet" type="text/css" href="stylesheet.css"/>
</head>
<body>
{body}
</body>
</html>"""


def xml_escape(text: str) -> str:
    return html.escape(text or "", quote=True)


@dataclass
class EPUBMetadata:
    """Metadata for EPUB file."""

    title: str
    author: str = "Unknown"
    language: str = "en"
    identifier: str = ""
    publisher: str = ""
    description: str = ""
    date: str = ""

    def __post_init__(self) -> None:
        if not self.identifier:
            self.identifier = f"urn:uuid:{uuid.uuid4()}"
        if not self.date:
            self.date = datetime.now().strftime("%Y-%m-%d")

    def dublin_core(self) -> list[str]:
        """<dc:*> elements for the package document; empty fields are left out."""
        elements = [
            f'<dc:identifier id="BookId">{xml_escape(self.identifier)}</dc:identifier>',
            f"<dc:title>{xml_escape(self.title)}</dc:title>",
            f"<dc:creator>{xml_escape(self.author)}</dc:creator>",
            f"<dc:language>{xml_escape(self.language)}</dc:language>",
            f"<dc:date>{xml_escape(self.date)}</dc:date>",
        ]
        if self.publisher:
            elements.append(f"<dc:publisher>{xml_escape(self.publisher)}</dc:publisher>")
        if self.description:
            elements.append(f"<dc:description>{xml_escape(self.description)}</dc:description>")
        return elements


class EPUBBuilder:
    """Builds EPUB 3 files (with an NCX for older readers) from chapters."""

    def __init__(
        self,
        metadata: EPUBMetadata,
        css: str = DEFAULT_EPUB_CSS,
        toc_title: str = "Table of Contents",
        chapter_title: str = "Page {number}",
    ) -> None:
        """Initialize EPUB builder.

        Args:
            metadata: Book metadata
            css: Stylesheet shared by all chapters
            toc_title: Heading of the navigation document
            chapter_title: Chapter title format ('{number}' = page number)
        """
        self.metadata = metadata
        self.css = css
        self.toc_title = toc_title
        self.chapter_title = chapter_title

    def render(self, chapters: Sequence[Chapter]) -> bytes:
        """Serialize chapters into an EPUB container.

        Args:
            chapters: Chapters in reading order

        Returns:
            EPUB bytes
        """
        files = [(f"chapter{i}", chapter) for i, chapter in enumerate(chapters)]

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as epub:
            # Readers sniff the first entry; it must be stored uncompressed
            epub.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
            epub.writestr("META-INF/container.xml", CONTAINER_XML)
            epub.writestr("OEBPS/content.opf", self._package_document(files))
            epub.writestr("OEBPS/toc.ncx", self._ncx(files))
            epub.writestr("OEBPS/nav.xhtml", self._page(self.toc_title, self._nav_body(files)))
            epub.writestr("OEBPS/stylesheet.css", self.css)
            for file_id, chapter in files:
                epub.writestr(f"OEBPS/{file_id}.xhtml", self._page(chapter.title, chapter.html_body))

        logger.debug(f"Serialized EPUB with {len(files)} chapters")
        return buffer.getvalue()

    def emit(
        self,
        results: Sequence[RecognitionResult],
        store: OutputStore,
        output_path: Path,
    ) -> Path:
        """Build chapters from results and write the EPUB."""
        chapters = build_chapters(results, self.chapter_title)
        store.write_file(output_path, self.render(chapters))
        logger.info(f"Created EPUB with {len(chapters)} chapters: {output_path}")
        return output_path

    def _page(self, title: str, body: str) -> str:
        return XHTML_PAGE.format(
            language=xml_escape(self.metadata.language),
            title=xml_escape(title),
            body=body,
        )

    def _nav_body(self, files: list[tuple[str, Chapter]]) -> str:
        entries = "\n".join(
            f'        <li><a href="{file_id}.xhtml">{xml_escape(chapter.title)}</a></li>'
            for file_id, chapter in files
        )
        return (
            '<nav epub:type="toc">\n'
            f"    <h1>{xml_escape(self.toc_title)}</h1>\n"
            f"    <ol>\n{entries}\n    </ol>\n"
            "</nav>"
        )

    def _package_document(self, files: list[tuple[str, Chapter]]) -> str:
        manifest = [
            '<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>',
            '<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>',
            '<item id="css" href="stylesheet.css" media-type="text/css"/>',
        ]
        manifest += [
            f'<item id="{file_id}" href="{file_id}.xhtml" media-type="application/xhtml+xml"/>'
            for file_id, _ in files
        ]
        spine = [f'<itemref idref="{file_id}"/>' for file_id, _ in files]
        modified = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        metadata = self.metadata.dublin_core() + [
            f'<meta property="dcterms:modified">{modified}</meta>'
        ]

        indent = "\n        "
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="BookId">\n'
            '    <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">'
            f"{indent}{indent.join(metadata)}\n"
            "    </metadata>\n"
            f"    <manifest>{indent}{indent.join(manifest)}\n    </manifest>\n"
            f'    <spine toc="ncx">{indent}{indent.join(spine)}\n    </spine>\n'
            "</package>"
        )

    def _ncx(self, files: list[tuple[str, Chapter]]) -> str:
        nav_points = "".join(
            f'\n        <navPoint id="navpoint{order}" playOrder="{order}">'
            f"<navLabel><text>{xml_escape(chapter.title)}</text></navLabel>"
            f'<content src="{file_id}.xhtml"/></navPoint>'
            for order, (file_id, chapter) in enumerate(files, start=1)
        )
        uid = xml_escape(self.metadata.identifier)
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">\n'
            "    <head>\n"
            f'        <meta name="dtb:uid" content="{uid}"/>\n'
            '        <meta name="dtb:depth" content="1"/>\n'
            "    </head>\n"
            f"    <docTitle><text>{xml_escape(self.metadata.title)}</text></docTitle>\n"
            f"    <navMap>{nav_points}\n    </navMap>\n"
            "</ncx>"
        )
