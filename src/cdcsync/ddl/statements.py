"""
DDL statement intents and the only place identifiers and literals are quoted.

Generators build a Statement (verb, object kind, target, option map, ...) and
call render() at the boundary; none of them concatenate quotes themselves.
Option values are plain strings, rendered as escaped SQL literals, unless
wrapped in Raw (secret references, numbers the engine wants bare).
"""
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence, Tuple, Union

_PLAIN_IDENT = re.compile(r"^[a-z_][a-z0-9_]*$")


# ─── Quoting ──────────────────────────────────────────────────────────────────

def quote_literal(value) -> str:
    """'value' with embedded single quotes doubled (never stripped)."""
    return "'" + str(value).replace("'", "''") + "'"


def quote_ident(name: str) -> str:
    """"name" with embedded double quotes doubled."""
    return '"' + name.replace('"', '""') + '"'


def ident(name: str) -> str:
    """Quote a PostgreSQL-dialect identifier only when it is not a plain lower-case name."""
    return name if _PLAIN_IDENT.match(name) else quote_ident(name)


def qualified_name(*parts: str) -> str:
    """schema.object with each part quoted as needed."""
    return ".".join(ident(p) for p in parts)


def backtick(name: str) -> str:
    """MySQL-dialect (StarRocks) identifier."""
    return "`" + name.replace("`", "``") + "`"


def backtick_qualified(*parts: str) -> str:
    return ".".join(backtick(p) for p in parts)


# ─── Statement intent ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Raw:
    """An option value emitted verbatim."""

    text: str

    def __str__(self) -> str:
        return self.text


OptionValue = Union[str, int, Raw]


@dataclass(frozen=True)
class Statement:
    """
    One DDL statement before rendering.

    Rendered layout:
        <verb> <kind> [<guard>] <target> [(columns)] [<query>]
        [WITH (options)] [AS '<secret>'] [<clauses>...] [CASCADE];
    """

    verb: str                                  # CREATE / DROP / TRUNCATE
    kind: str                                  # SCHEMA, SECRET, SOURCE, TABLE, SINK, DATABASE
    target: str                                # already-quoted identifier
    guard: Optional[str] = None                # "IF NOT EXISTS" / "IF EXISTS"
    columns: Tuple[str, ...] = ()
    query: Optional[str] = None                # e.g. "FROM src" or "AS SELECT ..."
    options: Tuple[Tuple[str, OptionValue], ...] = ()
    inline_options: bool = False
    secret: Optional[str] = None               # plaintext for CREATE SECRET ... AS
    clauses: Tuple[str, ...] = ()              # trailing clauses, one per line
    cascade: bool = False

    @classmethod
    def build(
        cls,
        verb: str,
        kind: str,
        target: str,
        *,
        guard: Optional[str] = None,
        columns: Sequence[str] = (),
        query: Optional[str] = None,
        options: Optional[Mapping[str, OptionValue]] = None,
        inline_options: bool = False,
        secret: Optional[str] = None,
        clauses: Sequence[str] = (),
        cascade: bool = False,
    ) -> "Statement":
        return cls(
            verb=verb,
            kind=kind,
            target=target,
            guard=guard,
            columns=tuple(columns),
            query=query,
            options=tuple((options or {}).items()),
            inline_options=inline_options,
            secret=secret,
            clauses=tuple(clauses),
            cascade=cascade,
        )

    def render(self) -> str:
        head = " ".join(
            p for p in (self.verb, self.kind, self.guard, self.target) if p
        )
        lines = [head]
        if self.columns:
            lines[-1] += " ("
            lines.append(",\n".join(f"  {c}" for c in self.columns))
            lines.append(")")
        if self.query:
            if "\n" in self.query:
                lines.append(self.query)
            else:
                lines[-1] += f" {self.query}"
        if self.options:
            rendered = [f"{k} = {_render_value(v)}" for k, v in self.options]
            if self.inline_options:
                lines[-1] += f" WITH ({', '.join(rendered)})"
            else:
                lines.append("WITH (")
                lines.append(",\n".join(f"  {o}" for o in rendered))
                lines.append(")")
        if self.secret is not None:
            lines[-1] += f" AS {quote_literal(self.secret)}"
        lines.extend(self.clauses)
        if self.cascade:
            lines[-1] += " CASCADE"
        return "\n".join(lines) + ";"

    def __str__(self) -> str:
        return self.render()


def _render_value(value: OptionValue) -> str:
    if isinstance(value, Raw):
        return value.text
    return quote_literal(value)


def select_clause(projection: Iterable[str], source: str) -> str:
    """AS SELECT <projection> FROM <source>, one projected column per line."""
    cols = ",\n  ".join(projection)
    return f"AS SELECT\n  {cols}\nFROM {source}"


def backtick_if_needed(name: str) -> str:
    """Bare name in key lists when it is plain, backticked otherwise."""
    return name if _PLAIN_IDENT.match(name) else backtick(name)
