"""
Filter expressions over the tiddler store.

A filter expression is a sequence of runs. Each run yields titles and is
combined with the titles accumulated so far:

    [prefix[$:/foo/]]          plain run: union with the accumulated titles
    +[tag[bar]]                 filter the accumulated titles
    -[suffix[/unknown]]         remove matches from the accumulated titles
    [[Some Title]] Word "x y"   literal titles

A run is a list of steps ``operator[operand]``; a leading ``!`` negates
the operator, ``operator:suffix`` passes a suffix (e.g. ``field:title``).
Operands are ``[literal]`` or ``{Title}`` / ``{Title!!field}`` which read
a field (``text`` by default) of another tiddler at evaluation time.

Example:
    compiled = compile_filter("[prefix[$:/views/]] -[[$:/views/Live View]]")
    titles = compiled(wiki)
"""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional

if TYPE_CHECKING:
    from tmap.db import Wiki
    from tmap.models import Tiddler


class FilterSyntaxError(Exception):
    """Error parsing or evaluating a filter expression."""
    pass


def parse_string_list(value) -> List[str]:
    """
    Parse a space separated title list where titles with spaces are
    wrapped in double square brackets, e.g. ``a [[b c]] d``.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [m.group(1) or m.group(2) for m in re.finditer(r"\[\[(.*?)\]\]|(\S+)", str(value))]


def stringify_list(titles: Iterable[str]) -> str:
    """Inverse of :func:`parse_string_list`."""
    return " ".join(f"[[{t}]]" if " " in t else t for t in titles)


@dataclass
class Operand:
    """A step operand, either a literal or an indirect text reference."""
    value: str
    indirect: bool = False

    def resolve(self, wiki: "Wiki") -> str:
        if not self.indirect:
            return self.value
        title, _, field_name = self.value.partition("!!")
        tiddler = wiki.get_tiddler(title)
        if tiddler is None:
            return ""
        value = tiddler.get(field_name or "text", "")
        return "" if value is None else str(value)


@dataclass
class Step:
    """A single operator application inside a run."""
    operator: str
    operand: Operand
    suffix: Optional[str] = None
    negate: bool = False

    def apply(self, wiki: "Wiki", titles: List[str], tiddlers: Dict[str, "Tiddler"], first: bool) -> List[str]:
        handler = _OPERATORS.get(self.operator)
        if handler is None:
            raise FilterSyntaxError(f"Unknown filter operator: {self.operator}")
        return handler(self, wiki, titles, tiddlers, first)

    def _select(self, titles: List[str], test: Callable[[str], bool]) -> List[str]:
        return [t for t in titles if test(t) != self.negate]


@dataclass
class Run:
    """A bracketed run of steps or a literal title, with its combinator prefix."""
    prefix: str = ""
    steps: List[Step] = field(default_factory=list)
    literal: Optional[str] = None

    def evaluate(self, wiki: "Wiki", titles: List[str], tiddlers: Dict[str, "Tiddler"]) -> List[str]:
        if self.literal is not None:
            return [self.literal]
        result = titles
        for i, step in enumerate(self.steps):
            result = step.apply(wiki, result, tiddlers, first=(i == 0))
        return result


class CompiledFilter:
    """
    Executable form of a filter expression.

    Call with a wiki and an optional list of source titles; the result is
    the ordered list of matching titles. Without a source the whole store
    is the source.
    """

    def __init__(self, expression: str, runs: List[Run]):
        self.expression = expression
        self.runs = runs

    def __call__(self, wiki: "Wiki", source: Optional[Iterable[str]] = None) -> List[str]:
        if not self.runs:
            return []

        tiddlers = wiki.snapshot()
        source_titles = list(source) if source is not None else list(tiddlers)

        accumulated: List[str] = []
        for run in self.runs:
            if run.prefix == "+":
                accumulated = run.evaluate(wiki, accumulated, tiddlers)
            elif run.prefix == "-":
                removed = set(run.evaluate(wiki, source_titles, tiddlers))
                accumulated = [t for t in accumulated if t not in removed]
            else:
                seen = set(accumulated)
                for title in run.evaluate(wiki, source_titles, tiddlers):
                    if title not in seen:
                        accumulated.append(title)
                        seen.add(title)
        return accumulated

    def __repr__(self) -> str:
        return f"CompiledFilter({self.expression!r})"


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

def _field_value(title: str, name: str, tiddlers: Dict[str, "Tiddler"]):
    if name == "title":
        return title
    tiddler = tiddlers.get(title)
    if tiddler is None:
        return None
    return tiddler.get(name)


def _op_all(step, wiki, titles, tiddlers, first):
    if step.operand.value not in ("", "tiddlers"):
        raise FilterSyntaxError(f"Unsupported all[] category: {step.operand.value}")
    return list(titles)


def _op_title(step, wiki, titles, tiddlers, first):
    value = step.operand.resolve(wiki)
    if first and not step.negate:
        return [value]
    return step._select(titles, lambda t: t == value)


def _op_field(step, wiki, titles, tiddlers, first):
    if not step.suffix:
        raise FilterSyntaxError("field operator requires a field name, e.g. field:title")
    value = step.operand.resolve(wiki)
    return step._select(
        titles,
        lambda t: str(_field_value(t, step.suffix, tiddlers) or "") == value
    )


def _op_prefix(step, wiki, titles, tiddlers, first):
    value = step.operand.resolve(wiki)
    return step._select(titles, lambda t: t.startswith(value))


def _op_suffix(step, wiki, titles, tiddlers, first):
    value = step.operand.resolve(wiki)
    return step._select(titles, lambda t: t.endswith(value))


def _op_tag(step, wiki, titles, tiddlers, first):
    value = step.operand.resolve(wiki)
    return step._select(
        titles,
        lambda t: value in parse_string_list(_field_value(t, "tags", tiddlers))
    )


def _op_has(step, wiki, titles, tiddlers, first):
    name = step.operand.resolve(wiki)
    return step._select(titles, lambda t: bool(_field_value(t, name, tiddlers)))


def _op_regexp(step, wiki, titles, tiddlers, first):
    pattern = step.operand.resolve(wiki)
    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise FilterSyntaxError(f"Invalid regular expression {pattern!r}: {e}") from e
    name = step.suffix or "title"
    return step._select(
        titles,
        lambda t: regex.search(str(_field_value(t, name, tiddlers) or "")) is not None
    )


_OPERATORS = {
    "all": _op_all,
    "title": _op_title,
    "field": _op_field,
    "prefix": _op_prefix,
    "suffix": _op_suffix,
    "tag": _op_tag,
    "has": _op_has,
    "regexp": _op_regexp,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class FilterParser:
    """Recursive-descent parser turning an expression string into runs."""

    def __init__(self, expression: str):
        self.expr = expression
        self.pos = 0

    def parse(self) -> List[Run]:
        runs = []
        while True:
            self._skip_whitespace()
            if self.pos >= len(self.expr):
                break
            runs.append(self._parse_run())
        return runs

    def _skip_whitespace(self):
        while self.pos < len(self.expr) and self.expr[self.pos].isspace():
            self.pos += 1

    def _read_until(self, terminator: str) -> str:
        end = self.expr.find(terminator, self.pos)
        if end == -1:
            raise FilterSyntaxError(
                f"Missing {terminator!r} in filter {self.expr!r} at position {self.pos}"
            )
        value = self.expr[self.pos:end]
        self.pos = end + len(terminator)
        return value

    def _parse_run(self) -> Run:
        prefix = ""
        if self.expr[self.pos] in "+-":
            prefix = self.expr[self.pos]
            self.pos += 1

        if self.expr.startswith("[[", self.pos):
            self.pos += 2
            return Run(prefix=prefix, literal=self._read_until("]]"))

        ch = self.expr[self.pos] if self.pos < len(self.expr) else ""
        if ch == "[":
            self.pos += 1
            return Run(prefix=prefix, steps=self._parse_steps())
        if ch in ("'", '"'):
            self.pos += 1
            return Run(prefix=prefix, literal=self._read_until(ch))

        start = self.pos
        while self.pos < len(self.expr) and not self.expr[self.pos].isspace():
            if self.expr[self.pos] in "[]":
                raise FilterSyntaxError(f"Unexpected bracket in filter {self.expr!r} at position {self.pos}")
            self.pos += 1
        word = self.expr[start:self.pos]
        if not word:
            raise FilterSyntaxError(f"Empty run in filter {self.expr!r}")
        return Run(prefix=prefix, literal=word)

    def _parse_steps(self) -> List[Step]:
        steps = []
        while True:
            if self.pos >= len(self.expr):
                raise FilterSyntaxError(f"Unterminated run in filter {self.expr!r}")
            if self.expr[self.pos] == "]":
                self.pos += 1
                break
            steps.append(self._parse_step())
        if not steps:
            raise FilterSyntaxError(f"Empty run in filter {self.expr!r}")
        return steps

    def _parse_step(self) -> Step:
        start = self.pos
        while self.pos < len(self.expr) and self.expr[self.pos] not in "[{<]":
            self.pos += 1
        name = self.expr[start:self.pos]

        negate = name.startswith("!")
        if negate:
            name = name[1:]
        operator, _, suffix = name.partition(":")
        operator = operator or "title"

        if self.pos >= len(self.expr) or self.expr[self.pos] == "]":
            raise FilterSyntaxError(f"Missing operand for {operator!r} in filter {self.expr!r}")

        bracket = self.expr[self.pos]
        self.pos += 1
        if bracket == "[":
            operand = Operand(self._read_until("]"))
        elif bracket == "{":
            operand = Operand(self._read_until("}"), indirect=True)
        else:
            raise FilterSyntaxError(f"Variables are not supported in filter {self.expr!r}")

        if operator not in _OPERATORS:
            raise FilterSyntaxError(f"Unknown filter operator: {operator}")

        return Step(operator=operator, operand=operand, suffix=suffix or None, negate=negate)


def compile_filter(expression: Optional[str]) -> CompiledFilter:
    """
    Compile a filter expression.

    The empty expression compiles to a filter that matches nothing.

    Raises:
        FilterSyntaxError: If the expression is malformed
    """
    expression = expression or ""
    return CompiledFilter(expression, FilterParser(expression).parse())
