import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .schemas import Reference


MARKER_RE = re.compile(r"\[(\d+)\]")
MIN_REFERENCES = 3


@dataclass
class NormalizedReferences:
    text: str
    references: List[Reference] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "references": [ref.model_dump(exclude_none=True) for ref in self.references],
        }


def _coerce_sources(sources: Sequence[Any]) -> List[Reference]:
    return [Reference.coerce(src) for src in sources or []]


def normalize_references(
    text: str,
    sources: Sequence[Any],
    minimum: int = MIN_REFERENCES,
) -> NormalizedReferences:
    """Renumber ``[n]`` citation markers densely and build the matching reference list.

    Markers pointing outside ``sources`` stay in the text untouched. When fewer than
    ``minimum`` references are cited, unused sources are appended (in their original
    order) without being cited anywhere in the text.
    """
    refs = _coerce_sources(sources)
    cited = sorted({int(m) for m in MARKER_RE.findall(text or "")})
    valid = [n for n in cited if 1 <= n <= len(refs)]
    mapping = {old: new for new, old in enumerate(valid, start=1)}

    # Single pass so a rewritten marker is never rewritten again.
    def _replace(match: "re.Match[str]") -> str:
        old = int(match.group(1))
        if old in mapping:
            return f"[{mapping[old]}]"
        return match.group(0)

    updated = MARKER_RE.sub(_replace, text or "")
    ordered = [refs[n - 1] for n in valid]

    if len(ordered) < minimum:
        used = {n - 1 for n in valid}
        for idx, ref in enumerate(refs):
            if len(ordered) >= minimum:
                break
            if idx in used:
                continue
            ordered.append(ref)

    return NormalizedReferences(text=updated, references=ordered)
