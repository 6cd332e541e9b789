import bisect
import difflib
from collections import Counter

from .matchers import LineMatcher

# ("equal" | "delete" | "insert", line)
Change = tuple[str, str]
Opcode = tuple[str, int, int, int, int]

def _split_lines(text: str) -> list[str]:
    lines = text.split("\n")
    out = [line + "\n" for line in lines[:-1]]
    if lines[-1]:
        out.append(lines[-1])
    return out

def _unique_anchors(a: list[str], b: list[str], alo: int, ahi: int, blo: int, bhi: int) -> list[tuple[int, int]]:
    """Longest run of lines occurring exactly once on each side, in the same order on both."""
    a_counts = Counter(a[alo:ahi])
    b_counts = Counter(b[blo:bhi])
    b_positions = {
        b[j]: j for j in range(blo, bhi) if b_counts[b[j]] == 1 and a_counts[b[j]] == 1
    }
    pairs = [(i, b_positions[a[i]]) for i in range(alo, ahi) if a[i] in b_positions]

    # patience sorting over the b positions
    tails: list[int] = []
    tail_positions: list[int] = []
    previous: list[int | None] = []
    for k, (_, j) in enumerate(pairs):
        pile = bisect.bisect_left(tail_positions, j)
        previous.append(tails[pile - 1] if pile else None)
        if pile == len(tails):
            tails.append(k)
            tail_positions.append(j)
        else:
            tails[pile] = k
            tail_positions[pile] = j

    anchors = []
    k = tails[-1] if tails else None
    while k is not None:
        anchors.append(pairs[k])
        k = previous[k]
    anchors.reverse()
    return anchors

def _diff_range(a: list[str], b: list[str], alo: int, ahi: int, blo: int, bhi: int, out: list[Opcode]) -> None:
    start_a, start_b = alo, blo
    while alo < ahi and blo < bhi and a[alo] == b[blo]:
        alo += 1
        blo += 1
    if alo > start_a:
        out.append(("equal", start_a, alo, start_b, blo))

    end_a, end_b = ahi, bhi
    while ahi > alo and bhi > blo and a[ahi - 1] == b[bhi - 1]:
        ahi -= 1
        bhi -= 1

    if alo < ahi or blo < bhi:
        anchors = _unique_anchors(a, b, alo, ahi, blo, bhi)
        if anchors:
            for i, j in anchors:
                _diff_range(a, b, alo, i, blo, j, out)
                out.append(("equal", i, i + 1, j, j + 1))
                alo, blo = i + 1, j + 1
            _diff_range(a, b, alo, ahi, blo, bhi, out)
        else:
            # no anchor left, so the range is small or entirely repetitive
            matcher = difflib.SequenceMatcher(None, a[alo:ahi], b[blo:bhi], autojunk=False)
            for tag, i1, i2, j1, j2 in matcher.get_opcodes():
                out.append((tag, alo + i1, alo + i2, blo + j1, blo + j2))

    if ahi < end_a:
        out.append(("equal", ahi, end_a, bhi, end_b))

def _changes(base_text: str, working_text: str) -> list[Change]:
    # a replace block pairs its lines up by position
    base_lines = _split_lines(base_text)
    working_lines = _split_lines(working_text)
    opcodes: list[Opcode] = []
    _diff_range(base_lines, working_lines, 0, len(base_lines), 0, len(working_lines), opcodes)

    changes: list[Change] = []
    for tag, i1, i2, j1, j2 in opcodes:
        if tag == "equal":
            changes.extend(("equal", line) for line in base_lines[i1:i2])
            continue
        for k in range(max(i2 - i1, j2 - j1)):
            if i1 + k < i2:
                changes.append(("delete", base_lines[i1 + k]))
            if j1 + k < j2:
                changes.append(("insert", working_lines[j1 + k]))
    return changes

def _merge(changes: list[Change], matcher: LineMatcher) -> str:
    merge_lines: list[str] = []
    for tag, line in changes:
        if tag == "equal":
            keep = True
        elif tag == "delete":
            keep = not matcher.is_relevant(line)
        else:
            keep = matcher.is_relevant(line)
        if not keep:
            continue
        if merge_lines and not merge_lines[-1].endswith("\n"):
            merge_lines[-1] += "\n"
        merge_lines.append(line)
    return "".join(merge_lines)

def _relevant_only(changes: list[Change], matcher: LineMatcher) -> bool:
    return all(tag == "equal" or matcher.is_relevant(line) for tag, line in changes)

def classify_and_merge(base_text: str, working_text: str, matcher: LineMatcher) -> str:
    """Apply only the relevant side of every change.

    Relevant deletions and insertions are taken from ``working_text``;
    everything else stays as it is in ``base_text``.
    """
    return _merge(_changes(base_text, working_text), matcher)

def has_relevant_only_changes(base_text: str, working_text: str, matcher: LineMatcher) -> bool:
    return _relevant_only(_changes(base_text, working_text), matcher)

def stage_content(base_text: str, working_text: str, matcher: LineMatcher) -> tuple[str, bool]:
    """Content to commit, and whether hunk-level filtering was needed."""
    changes = _changes(base_text, working_text)
    if _relevant_only(changes, matcher):
        return working_text, False
    return _merge(changes, matcher), True
