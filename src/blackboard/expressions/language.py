"""Parser for the protocol expression language.

Protocol expressions use a small C-like dialect:

    [Weight] / pow([Height] / 100, 2)
    if(Gender = 'Male', 1, 0) && !isnull(Age)

Source text is tokenised, rewritten to the equivalent Python expression and
parsed with ast.parse(mode="eval"). Every identifier (bare or bracketed,
including function names) is replaced by a positional placeholder so that
references may contain spaces, '?' or collide with Python keywords ("if",
"in"). The resulting tree is checked against a whitelist of node types and
is never compiled or passed to eval(); see runtime.py for the interpreter.

Operator precedence follows Python's grammar. The visible consequence is that the
bitwise operators (& | ^ << >>) bind tighter than comparisons, so
"a | b = c" means "(a | b) = c" rather than "a | (b = c)". Comparisons chain:
"1 < x < 10" tests both bounds.

Oversized input (integer literals too long to convert, operator chains too
deep for the parser) is reported as ExpressionSyntaxError.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass
from functools import lru_cache

from blackboard.expressions.errors import ExpressionSyntaxError

PLACEHOLDER_PREFIX = "_n"

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<bracket>\[[^\]]*\])
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>&&|\|\||<<|>>|<=|>=|<>|==|!=|[-+*/%&|^~!<>=(),])
    """,
    re.VERBOSE,
)

_ESCAPE_PATTERN = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", "'": "'", '"': '"'}

_WORDS = {
    "and": "and",
    "or": "or",
    "not": "not",
    "true": "True",
    "false": "False",
}

_OPERATORS = {
    "&&": "and",
    "||": "or",
    "!": "not",
    "=": "==",
    "<>": "!=",
}

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Expression,
    ast.BoolOp,
    ast.BinOp,
    ast.UnaryOp,
    ast.Compare,
    ast.Call,
    ast.Name,
    ast.Constant,
    ast.Load,
    ast.And,
    ast.Or,
    ast.Not,
    ast.USub,
    ast.UAdd,
    ast.Invert,
    ast.Add,
    ast.Sub,
    ast.Mult,
    ast.Div,
    ast.Mod,
    ast.BitAnd,
    ast.BitOr,
    ast.BitXor,
    ast.LShift,
    ast.RShift,
    ast.Eq,
    ast.NotEq,
    ast.Lt,
    ast.LtE,
    ast.Gt,
    ast.GtE,
)


@dataclass(frozen=True)
class ParsedExpression:
    """A parsed, validated expression ready for evaluation.

    Attributes:
        text: Original source text.
        tree: Root of the expression tree (body of an ast.Expression).
        names: Identifier text for each placeholder, by placeholder index.
    """

    text: str
    tree: ast.expr
    names: tuple[str, ...]

    def name_of(self, node: ast.Name) -> str:
        """Return the source identifier a placeholder node stands for."""
        return self.names[int(node.id[len(PLACEHOLDER_PREFIX) :])]


def _unescape(body: str) -> str:
    def replace(match: re.Match[str]) -> str:
        code = match.group(1)
        if code.startswith("u") and len(code) == 5:
            return chr(int(code[1:], 16))
        return _ESCAPES.get(code, code)

    return _ESCAPE_PATTERN.sub(replace, body)


def _translate(text: str) -> tuple[str, tuple[str, ...]]:
    """Rewrite expression text as Python source plus the placeholder table."""
    parts: list[str] = []
    names: list[str] = []

    def placeholder(name: str) -> str:
        names.append(name)
        return f"{PLACEHOLDER_PREFIX}{len(names) - 1}"

    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            raise ExpressionSyntaxError(
                text, f"unexpected character {text[position]!r}", position
            )

        kind = match.lastgroup
        token = match.group()
        position = match.end()

        if kind == "ws":
            continue
        if kind == "number":
            is_integer = not any(c in token for c in ".eE")
            parts.append(str(int(token)) if is_integer else token)
        elif kind == "string":
            parts.append(repr(_unescape(token[1:-1])))
        elif kind == "bracket":
            name = token[1:-1].strip()
            if not name:
                raise ExpressionSyntaxError(text, "empty identifier", match.start())
            parts.append(placeholder(name))
        elif kind == "name":
            word = _WORDS.get(token.casefold())
            parts.append(word if word is not None else placeholder(token))
        else:
            parts.append(_OPERATORS.get(token, token))

    if not parts:
        raise ExpressionSyntaxError(text, "empty expression")

    return " ".join(parts), tuple(names)


def _check_tree(text: str, tree: ast.Expression) -> None:
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ExpressionSyntaxError(
                text,
                f"unsupported construct ({type(node).__name__})",
                getattr(node, "col_offset", None),
            )
        if isinstance(node, ast.Call) and (
            not isinstance(node.func, ast.Name) or node.keywords
        ):
            raise ExpressionSyntaxError(text, "invalid function call")


@lru_cache(maxsize=1024)
def parse(text: str) -> ParsedExpression:
    """Parse expression text.

    Results are cached; the returned object is immutable and may be shared.

    Raises:
        ExpressionSyntaxError: If the text is not a valid expression.
    """
    try:
        source, names = _translate(text)
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise ExpressionSyntaxError(text, e.msg or "invalid syntax") from e
    except (ValueError, RecursionError, MemoryError) as e:
        raise ExpressionSyntaxError(text, "expression too large or too deeply nested") from e

    _check_tree(text, tree)
    return ParsedExpression(text=text, tree=tree.body, names=names)
