"""
Pure text and table helpers shared by content capability implementations.
"""

import json
import re
from typing import Any, Dict, List, Optional, Sequence


RANGE_PATTERN = re.compile(r'^(\d+)[\s-]+(\d+)$')
INDEX_PATTERN = re.compile(r'^\d+$')


def extract_words(text: str, word_index: Any) -> str:
    """
    Pick words out of element text.

    Indexing is 1-based and inclusive:
    - "2" returns the second word, "" when 0 or past the end
    - "1-3" (or "1 3") returns words one to three joined by single spaces;
      a reversed or zero-based range returns ""
    - anything else returns ""

    Args:
        text: Raw element text
        word_index: Index or range; None/empty means the whole text

    Returns:
        The selected words
    """
    text = (text or '').strip()
    if word_index is None:
        return text
    index_text = str(word_index).strip()
    if not index_text:
        return text

    words = text.split()

    range_match = RANGE_PATTERN.match(index_text)
    if range_match:
        start = int(range_match.group(1))
        end = int(range_match.group(2))
        if start > 0 and end >= start:
            return ' '.join(words[start - 1:end])
        return ''

    if INDEX_PATTERN.match(index_text):
        index = int(index_text)
        if 0 < index <= len(words):
            return words[index - 1]
        return ''

    return ''


def serialize_table(headers: Optional[Sequence[Any]], rows: Sequence[Sequence[Any]]) -> List[Dict[str, str]]:
    """
    Turn table cells into row objects keyed by header text.

    Columns without a usable header are named col1, col2, ... (1-based).
    """
    header_names = [str(h).strip() if h is not None else '' for h in (headers or [])]
    records: List[Dict[str, str]] = []
    for row in rows:
        record: Dict[str, str] = {}
        for position, cell in enumerate(row):
            name = header_names[position] if position < len(header_names) else ''
            if not name:
                name = f"col{position + 1}"
            record[name] = '' if cell is None else str(cell).strip()
        records.append(record)
    return records


def encode_table(records: List[Dict[str, str]]) -> str:
    """JSON text stored in a variable; "[]" when the table has no rows."""
    return json.dumps(records, ensure_ascii=False)
