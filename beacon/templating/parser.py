"""
Parser for the template language.

Builds a tree of nodes from the lexer's items. ``define`` and ``block``
bodies become separate trees so that one source text can contribute
several named templates.
"""

import ast
from collections.abc import Container
from dataclasses import dataclass, field

from beacon.templating.lexer import (
    ActionItem,
    TemplateSyntaxError,
    TextItem,
    Token,
    TokenType,
    scan,
)

_KEYWORDS = frozenset({
    "if", "else", "end", "range", "with", "define", "template", "block",
    "break", "continue", "nil", "true", "false",
})

# Nesting of parenthesized pipelines within one action
MAX_PAREN_DEPTH = 100


@dataclass
class Node:
    pos: int
    line: int


@dataclass
class TextNode(Node):
    text: str

    def __str__(self) -> str:
        return repr(self.text)


@dataclass
class ListNode(Node):
    nodes: list[Node] = field(default_factory=list)

    def __str__(self) -> str:
        return "".join(str(n) for n in self.nodes)


@dataclass
class DotNode(Node):
    def __str__(self) -> str:
        return "."


@dataclass
class NilNode(Node):
    def __str__(self) -> str:
        return "nil"


@dataclass
class BoolNode(Node):
    value: bool

    def __str__(self) -> str:
        return "true" if self.value else "false"


@dataclass
class NumberNode(Node):
    value: int | float
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass
class StringNode(Node):
    value: str
    quoted: str

    def __str__(self) -> str:
        return self.quoted


@dataclass
class FieldNode(Node):
    idents: list[str]

    def __str__(self) -> str:
        return "".join(f".{i}" for i in self.idents)


@dataclass
class VariableNode(Node):
    name: str
    idents: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return self.name + "".join(f".{i}" for i in self.idents)


@dataclass
class IdentifierNode(Node):
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass
class CommandNode(Node):
    args: list[Node] = field(default_factory=list)

    def __str__(self) -> str:
        parts = []
        for arg in self.args:
            parts.append(f"({arg})" if isinstance(arg, PipeNode) else str(arg))
        return " ".join(parts)


@dataclass
class PipeNode(Node):
    decl: list[str] = field(default_factory=list)
    is_assign: bool = False
    cmds: list[CommandNode] = field(default_factory=list)

    def __str__(self) -> str:
        text = " | ".join(str(c) for c in self.cmds)
        if self.decl:
            op = " = " if self.is_assign else " := "
            text = ", ".join(self.decl) + op + text
        return text


@dataclass
class ChainNode(Node):
    node: Node
    fields: list[str]

    def __str__(self) -> str:
        base = f"({self.node})" if isinstance(self.node, PipeNode) else str(self.node)
        return base + "".join(f".{f}" for f in self.fields)


@dataclass
class ActionNode(Node):
    pipe: PipeNode

    def __str__(self) -> str:
        return f"{{{{{self.pipe}}}}}"


@dataclass
class BranchNode(Node):
    pipe: PipeNode
    body: ListNode
    else_body: ListNode | None = None

    keyword = ""

    def __str__(self) -> str:
        text = f"{{{{{self.keyword} {self.pipe}}}}}{self.body}"
        if self.else_body is not None:
            text += f"{{{{else}}}}{self.else_body}"
        return text + "{{end}}"


class IfNode(BranchNode):
    keyword = "if"


class RangeNode(BranchNode):
    keyword = "range"


class WithNode(BranchNode):
    keyword = "with"


@dataclass
class BreakNode(Node):
    def __str__(self) -> str:
        return "{{break}}"


@dataclass
class ContinueNode(Node):
    def __str__(self) -> str:
        return "{{continue}}"


@dataclass
class TemplateNode(Node):
    name: str
    pipe: PipeNode | None = None

    def __str__(self) -> str:
        quoted = '"' + self.name.replace("\\", "\\\\").replace('"', '\\"') + '"'
        if self.pipe is None:
            return f"{{{{template {quoted}}}}}"
        return f"{{{{template {quoted} {self.pipe}}}}}"


@dataclass
class Tree:
    """One named template: its root list and the source it was parsed from."""
    name: str
    parse_name: str
    root: ListNode
    text: str

    def is_empty(self) -> bool:
        return all(isinstance(n, TextNode) and not n.text.strip() for n in self.root.nodes)

    def location(self, node: Node) -> str:
        """``name:line:col`` of a node, col counted in bytes from the line start."""
        before = self.text[:node.pos]
        col = node.pos - (before.rfind("\n") + 1)
        return f"{self.parse_name}:{before.count(chr(10)) + 1}:{col}"


class _Stop:
    """Marks the control keyword that ended a list."""

    def __init__(self, keyword: str, item: ActionItem):
        self.keyword = keyword
        self.item = item


class Parser:
    """
    Parses one source text into a main tree plus the trees it defines.

    Args:
        name: Name of the main template; also used in error locations
        functions: Names of the functions templates may call
    """

    def __init__(self, name: str, functions: Container[str]):
        self.name = name
        self.functions = functions
        self.text = ""
        self.items: list[TextItem | ActionItem] = []
        self.index = 0
        self.vars: list[str] = ["$"]
        self.trees: dict[str, Tree] = {}

    def parse(self, text: str) -> dict[str, Tree]:
        """
        Parse the text.

        Returns:
            Mapping of template name to tree; the main template is under ``name``

        Raises:
            TemplateSyntaxError: On any syntax error
        """
        self.text = text
        self.items = scan(text)
        self.index = 0
        root, stop = self._parse_list(top_level=True)
        if stop is not None:
            raise TemplateSyntaxError(f"unexpected {{{{{stop.keyword}}}}}", stop.item.line)
        self._add_tree(self.name, root)
        return self.trees

    def _add_tree(self, name: str, root: ListNode) -> None:
        tree = Tree(name, self.name, root, self.text)
        existing = self.trees.get(name)
        # An empty body never replaces a definition made earlier in the same text
        if existing is not None and tree.is_empty():
            return
        self.trees[name] = tree

    def _parse_list(self, top_level: bool = False) -> tuple[ListNode, _Stop | None]:
        first_pos = self.items[self.index].pos if self.index < len(self.items) else len(self.text)
        node_list = ListNode(first_pos, 1)
        while self.index < len(self.items):
            item = self.items[self.index]
            self.index += 1
            if isinstance(item, TextItem):
                node_list.nodes.append(TextNode(item.pos, item.line, item.text))
                continue

            tokens = item.tokens
            keyword = _keyword(tokens)
            if keyword in ("end", "else"):
                if top_level:
                    raise TemplateSyntaxError(f"unexpected {{{{{keyword}}}}}", item.line)
                return node_list, _Stop(keyword, item)
            if keyword == "define":
                if not top_level:
                    raise TemplateSyntaxError("unexpected {{define}}", item.line)
                self._parse_define(item)
                continue
            node_list.nodes.append(self._parse_action(item, keyword))

        if not top_level:
            raise TemplateSyntaxError("unexpected EOF", _line_of(self.text, len(self.text)))
        return node_list, None

    def _parse_action(self, item: ActionItem, keyword: str | None) -> Node:
        tokens = item.tokens
        if keyword in ("if", "range", "with"):
            return self._parse_branch(keyword, item, list(tokens[1:]))
        if keyword == "template":
            return self._parse_template(item, list(tokens[1:]))
        if keyword == "block":
            return self._parse_block(item, list(tokens[1:]))
        if keyword in ("break", "continue"):
            if len(tokens) > 1:
                raise TemplateSyntaxError(f"unexpected {tokens[1].value!r} in {{{{{keyword}}}}}", item.line)
            if keyword == "break":
                return BreakNode(tokens[0].pos, tokens[0].line)
            return ContinueNode(tokens[0].pos, tokens[0].line)
        if not tokens:
            raise TemplateSyntaxError("missing value for command", item.line)
        pipe = _TokenStream(self, list(tokens), item.line).pipeline("command", allow_decl=True)
        return ActionNode(tokens[0].pos, tokens[0].line, pipe)

    def _parse_branch(self, keyword: str, item: ActionItem, tokens: list[Token]) -> BranchNode:
        mark = len(self.vars)
        pipe = _TokenStream(self, tokens, item.line).pipeline(keyword, allow_decl=True)
        if not pipe.cmds:
            raise TemplateSyntaxError(f"missing value for {keyword}", item.line)
        body, stop = self._parse_list()
        else_body: ListNode | None = None

        if stop is not None and stop.keyword == "else":
            rest = list(stop.item.tokens[1:])
            chained = _keyword(tuple(rest))
            if rest and chained in ("if", "with") and chained == keyword:
                # "else if" / "else with" share the closing {{end}}
                nested = self._parse_branch(chained, ActionItem(tuple(rest), rest[0].pos, stop.item.line), rest[1:])
                else_body = ListNode(rest[0].pos, stop.item.line, [nested])
                stop = None
            elif rest:
                raise TemplateSyntaxError(f"unexpected {rest[0].value!r} in else", stop.item.line)
            else:
                else_body, stop = self._parse_list()
                if stop is None or stop.keyword != "end":
                    raise TemplateSyntaxError("expected end; found {{else}}", stop.item.line if stop else item.line)

        if stop is not None:
            if stop.keyword != "end":
                raise TemplateSyntaxError(f"unexpected {{{{{stop.keyword}}}}}", stop.item.line)
            if len(stop.item.tokens) > 1:
                raise TemplateSyntaxError("unexpected token in end", stop.item.line)

        del self.vars[mark:]
        node_type = {"if": IfNode, "range": RangeNode, "with": WithNode}[keyword]
        first = item.tokens[0] if item.tokens else None
        pos = first.pos if first is not None else item.pos
        return node_type(pos, item.line, pipe, body, else_body)

    def _template_name(self, tokens: list[Token], context: str, line: int) -> str:
        if not tokens or tokens[0].type not in (TokenType.STRING, TokenType.RAW_STRING):
            raise TemplateSyntaxError(f"unexpected token in {context} clause", line)
        return _unquote(tokens[0])

    def _parse_template(self, item: ActionItem, tokens: list[Token]) -> TemplateNode:
        name = self._template_name(tokens, "template", item.line)
        pipe = None
        if len(tokens) > 1:
            pipe = _TokenStream(self, tokens[1:], item.line).pipeline("template", allow_decl=False)
        return TemplateNode(tokens[0].pos, tokens[0].line, name, pipe)

    def _parse_define(self, item: ActionItem) -> None:
        tokens = list(item.tokens[1:])
        name = self._template_name(tokens, "define", item.line)
        if len(tokens) > 1:
            raise TemplateSyntaxError(f"unexpected {tokens[1].value!r} in define clause", item.line)
        saved_vars = self.vars
        self.vars = ["$"]
        body, stop = self._parse_list()
        self.vars = saved_vars
        if stop is None or stop.keyword != "end":
            raise TemplateSyntaxError("unexpected {{else}} in define", item.line)
        self._add_tree(name, body)

    def _parse_block(self, item: ActionItem, tokens: list[Token]) -> TemplateNode:
        name = self._template_name(tokens, "block", item.line)
        pipe = None
        if len(tokens) > 1:
            pipe = _TokenStream(self, tokens[1:], item.line).pipeline("block", allow_decl=False)
        saved_vars = self.vars
        self.vars = ["$"]
        body, stop = self._parse_list()
        self.vars = saved_vars
        if stop is None or stop.keyword != "end":
            raise TemplateSyntaxError("unexpected {{else}} in block", item.line)
        self._add_tree(name, body)
        return TemplateNode(tokens[0].pos, tokens[0].line, name, pipe)


class _TokenStream:
    """Recursive descent over the tokens of a single action."""

    def __init__(self, parser: Parser, tokens: list[Token], line: int):
        self.parser = parser
        self.tokens = tokens
        self.i = 0
        self.line = line
        self.paren_depth = 0

    def peek(self) -> Token | None:
        return self.tokens[self.i] if self.i < len(self.tokens) else None

    def next(self) -> Token:
        token = self.tokens[self.i]
        self.i += 1
        return token

    def error(self, message: str) -> TemplateSyntaxError:
        token = self.peek()
        return TemplateSyntaxError(message, token.line if token else self.line)

    def pipeline(self, context: str, allow_decl: bool, in_parens: bool = False) -> PipeNode:
        start = self.peek()
        pipe = PipeNode(start.pos if start else 0, start.line if start else self.line)

        if allow_decl:
            self._declarations(pipe, context)

        while True:
            token = self.peek()
            if token is None:
                if in_parens:
                    raise self.error("unclosed left paren")
                break
            if token.type == TokenType.RIGHT_PAREN:
                if not in_parens:
                    raise self.error("unexpected right paren")
                break
            cmd = self._command(in_parens)
            pipe.cmds.append(cmd)
            token = self.peek()
            if token is not None and token.type == TokenType.PIPE:
                self.next()
                if self.peek() is None or self.peek().type == TokenType.RIGHT_PAREN:
                    raise self.error("missing command after pipe")

        if not pipe.cmds and (context != "template" and context != "block"):
            raise self.error(f"missing value for {context}")
        if in_parens is False and self.i < len(self.tokens):
            raise self.error(f"unexpected {self.tokens[self.i].value!r} in {context}")
        return pipe

    def _declarations(self, pipe: PipeNode, context: str) -> None:
        """Consume ``$x :=``, ``$x =`` or ``$i, $v :=`` when present."""
        tokens = self.tokens[self.i:]
        if len(tokens) >= 2 and tokens[0].type == TokenType.VARIABLE:
            if tokens[1].type in (TokenType.DECLARE, TokenType.ASSIGN):
                name = tokens[0].value
                is_assign = tokens[1].type == TokenType.ASSIGN
                if is_assign and name not in self.parser.vars:
                    raise TemplateSyntaxError(f'undefined variable "{name}"', tokens[0].line)
                pipe.decl.append(name)
                pipe.is_assign = is_assign
                self.i += 2
                if not is_assign:
                    self.parser.vars.append(name)
                return
            if (context == "range" and len(tokens) >= 4 and tokens[1].type == TokenType.COMMA
                    and tokens[2].type == TokenType.VARIABLE
                    and tokens[3].type in (TokenType.DECLARE, TokenType.ASSIGN)):
                pipe.decl.extend([tokens[0].value, tokens[2].value])
                pipe.is_assign = tokens[3].type == TokenType.ASSIGN
                self.i += 4
                if not pipe.is_assign:
                    self.parser.vars.extend(pipe.decl)

    def _command(self, in_parens: bool) -> CommandNode:
        first = self.peek()
        cmd = CommandNode(first.pos, first.line)
        while True:
            token = self.peek()
            if token is None or token.type == TokenType.PIPE:
                break
            if token.type == TokenType.RIGHT_PAREN:
                if not in_parens:
                    raise self.error("unexpected right paren")
                break
            if cmd.args and not token.space_before and token.type != TokenType.LEFT_PAREN:
                raise self.error(f"missing space? unexpected {token.value!r} in operand")
            cmd.args.append(self._operand())
        if not cmd.args:
            raise self.error("empty command")
        return cmd

    def _operand(self) -> Node:
        node = self._term()
        fields: list[str] = []
        while True:
            token = self.peek()
            if token is None or token.type != TokenType.FIELD or token.space_before:
                break
            fields.append(self.next().value[1:])
        if not fields:
            return node
        if isinstance(node, FieldNode):
            node.idents.extend(fields)
            return node
        if isinstance(node, VariableNode):
            node.idents.extend(fields)
            return node
        if isinstance(node, (BoolNode, StringNode, NumberNode, NilNode, DotNode)):
            raise self.error(f"unexpected . after term {str(node)!r}")
        return ChainNode(node.pos, node.line, node, fields)

    def _term(self) -> Node:
        token = self.next()
        kind = token.type
        if kind == TokenType.FIELD:
            return FieldNode(token.pos, token.line, [token.value[1:]])
        if kind == TokenType.DOT:
            return DotNode(token.pos, token.line)
        if kind == TokenType.VARIABLE:
            if token.value not in self.parser.vars:
                raise TemplateSyntaxError(f'undefined variable "{token.value}"', token.line)
            return VariableNode(token.pos, token.line, token.value)
        if kind in (TokenType.STRING, TokenType.RAW_STRING):
            return StringNode(token.pos, token.line, _unquote(token), token.value)
        if kind == TokenType.CHAR:
            return NumberNode(token.pos, token.line, ord(_unquote(token)), token.value)
        if kind == TokenType.NUMBER:
            return NumberNode(token.pos, token.line, _parse_number(token), token.value)
        if kind == TokenType.LEFT_PAREN:
            self.paren_depth += 1
            if self.paren_depth > MAX_PAREN_DEPTH:
                raise TemplateSyntaxError("max expression depth exceeded", token.line)
            pipe = self.pipeline("parenthesized pipeline", allow_decl=False, in_parens=True)
            self.paren_depth -= 1
            self.next()
            return pipe
        if kind == TokenType.IDENTIFIER:
            name = token.value
            if name == "true" or name == "false":
                return BoolNode(token.pos, token.line, name == "true")
            if name == "nil":
                return NilNode(token.pos, token.line)
            if name in _KEYWORDS:
                raise TemplateSyntaxError(f"unexpected <{name}> in operand", token.line)
            if name not in self.parser.functions:
                raise TemplateSyntaxError(f'function "{name}" not defined', token.line)
            return IdentifierNode(token.pos, token.line, name)
        raise TemplateSyntaxError(f"unexpected {token.value!r} in operand", token.line)


def _keyword(tokens: tuple[Token, ...]) -> str | None:
    if tokens and tokens[0].type == TokenType.IDENTIFIER and tokens[0].value in _KEYWORDS:
        return tokens[0].value
    return None


def _line_of(text: str, pos: int) -> int:
    return text.count("\n", 0, pos) + 1


def _unquote(token: Token) -> str:
    if token.type == TokenType.RAW_STRING:
        return token.value[1:-1]
    try:
        value = ast.literal_eval(token.value)
    except (ValueError, SyntaxError) as e:
        raise TemplateSyntaxError(f"invalid syntax: {token.value}", token.line) from e
    if not isinstance(value, str):
        raise TemplateSyntaxError(f"invalid syntax: {token.value}", token.line)
    return value


def _parse_number(token: Token) -> int | float:
    text = token.value.replace("_", "")
    try:
        return int(text, 0)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError as e:
        raise TemplateSyntaxError(f"illegal number syntax: {token.value!r}", token.line) from e


def parse(name: str, text: str, functions: Container[str]) -> dict[str, Tree]:
    """Parse template text into its named trees."""
    return Parser(name, functions).parse(text)

