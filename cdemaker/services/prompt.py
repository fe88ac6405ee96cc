from __future__ import annotations
from typing import List, Sequence

from cdemaker.comparison_models import ExtractedRow, PageImage


def build_specs_section(rows: Sequence[ExtractedRow]) -> str:
    """One numbered block per spec row, in input order."""
    blocks: List[str] = []
    for idx, row in enumerate(rows, start=1):
        blocks.append(
            f"SPEC #{idx} (ID: {row.id}):\n"
            f"  - Field: {row.field}\n"
            f"  - Required Value: {row.value}\n"
            f"  - Unit: {row.unit or 'N/A'}\n"
            f"  - Section: {row.section or 'General'}"
        )
    return "\n\n".join(blocks)


def page_numbers(pages: Sequence[PageImage]) -> List[int]:
    return [p.page_number for p in pages]


def describe_pages(numbers: Sequence[int]) -> str:
    """Pages as prompt text: `6-8` for consecutive pages, `3, 7` otherwise."""
    first = numbers[0]
    if len(numbers) > 1 and list(numbers) == list(range(first, first + len(numbers))):
        return f"{first}-{numbers[-1]}"
    return ", ".join(str(n) for n in numbers)


def build_page_labels(pages: Sequence[PageImage]) -> str:
    labels = " ".join(f"[Page {p.page_number}]" for p in pages)
    return f"Page numbers in order: {labels}"


def build_batch_prompt(rows: Sequence[ExtractedRow], pages: Sequence[PageImage]) -> str:
    pages_text = describe_pages(page_numbers(pages))
    return f"""You are a construction document reviewer comparing several specification requirements against manufacturer submittal pages in a single pass.

=== SPECIFICATION REQUIREMENTS TO VERIFY ({len(rows)} items) ===
{build_specs_section(rows)}

=== TASK ===
Search the {len(pages)} submittal pages (pages {pages_text}) for values that directly answer each specification requirement.

=== RULES ===
1. Only return findings that directly answer a specification requirement.
2. Every finding must carry the "specId" of the requirement it answers, copied exactly from the list above.
3. The value must belong to the exact equipment or item being specified.
4. Prefer missing an uncertain match over reporting a wrong one.
5. At most 2 findings per requirement.
6. "pageNumber" must be one of the listed pages ({pages_text}).

=== COMPLIANCE STATUS ===
- "comply": the submittal value meets or exceeds the requirement
- "deviate": the values differ but may be acceptable after review
- "exception": the values are incompatible or wrong

=== BOUNDING BOX ===
Give normalized coordinates (0-1) of where each value was found: x and y of the top-left corner, width and height as fractions of the page.

Respond with strict JSON only:
{{
  "findings": [
    {{
      "specId": "<ID of the requirement>",
      "pageNumber": <page number>,
      "value": "<exact value found>",
      "unit": "<unit or null>",
      "confidence": "high" | "medium" | "low",
      "status": "comply" | "deviate" | "exception",
      "boundingBox": {{"x": <0-1>, "y": <0-1>, "width": <0-1>, "height": <0-1>}},
      "explanation": "<at most 15 words>"
    }}
  ]
}}
If nothing relevant is found for a requirement, leave it out."""
