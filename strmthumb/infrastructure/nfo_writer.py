import html
import logging
import re
from datetime import date
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Characters not allowed anywhere in an XML 1.0 document
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def _esc(text: object) -> str:
    """XML-escape a value. Always call this on free text (names, URLs)."""
    return html.escape(_XML_ILLEGAL.sub("", str(text)), quote=True)


class NfoWriter:
    """Writes the Kodi/Emby style ``<movie>`` sidecar next to a .strm file."""

    def render(
        self,
        title: str,
        stream_url: str,
        thumb_name: str,
        date_added: Optional[date] = None,
        duration: Optional[float] = None,
    ) -> str:
        date_added = date_added or date.today()
        lines = [
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>',
            "<movie>",
            f"  <title>{_esc(title)}</title>",
            f"  <streamUrl>{_esc(stream_url)}</streamUrl>",
            f"  <thumb>{_esc(thumb_name)}</thumb>",
            f"  <dateadded>{date_added.isoformat()}</dateadded>",
        ]
        if duration is not None and duration > 0:
            # runtime is whole minutes by convention
            lines.append(f"  <runtime>{max(1, round(duration / 60))}</runtime>")
            lines.append(f"  <durationinseconds>{int(round(duration))}</durationinseconds>")
        lines.append("</movie>")
        return "\n".join(lines) + "\n"

    def write(
        self,
        nfo_path: Path,
        title: str,
        stream_url: str,
        thumb_name: str,
        duration: Optional[float] = None,
        date_added: Optional[date] = None,
    ) -> Path:
        content = self.render(title, stream_url, thumb_name, date_added=date_added, duration=duration)
        tmp_path = nfo_path.with_name(nfo_path.name + ".tmp")
        tmp_path.write_text(content, encoding="utf-8")
        tmp_path.replace(nfo_path)
        logger.debug(f"NFO written: {nfo_path}")
        return nfo_path
