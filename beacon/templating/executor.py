"""
Executor for parsed templates.

Walks a tree against a data value and writes the output into a list of
strings. Execution never touches anything outside the data it is given:
fields resolve only through each type's ``template_fields`` allow-list or
through mapping keys.
"""

import inspect
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from beacon.templating.functions import (
    MISSING,
    SHORT_CIRCUIT,
    TemplateFuncError,
    format_value,
    go_type_name,
    truth,
)
from beacon.templating.parser import (
    ActionNode,
    BoolNode,
    BranchNode,
    BreakNode,
    ChainNode,
    CommandNode,
    ContinueNode,
    DotNode,
    FieldNode,
    IdentifierNode,
    IfNode,
    ListNode,
    NilNode,
    Node,
    NumberNode,
    PipeNode,
    RangeNode,
    StringNode,
    TemplateNode,
    TextNode,
    Tree,
    VariableNode,
    WithNode,
)

MAX_TEMPLATE_DEPTH = 100
# Upper bound for ranging over an integer
MAX_RANGE_COUNT = 100_000


class TemplateExecError(Exception):
    """Execution failure, already formatted with location and context."""


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class _State:
    """Per-template execution state: current tree, variables and output."""

    def __init__(
        self,
        trees: Mapping[str, Tree],
        funcs: Mapping[str, Callable[..., Any]],
        tree: Tree,
        out: list[str],
        depth: int,
        dot: Any
    ):
        self.trees = trees
        self.funcs = funcs
        self.tree = tree
        self.out = out
        self.depth = depth
        self.node: Node | None = None
        self.vars: list[list[Any]] = [["$", dot]]

    def at(self, node: Node) -> None:
        self.node = node

    def error(self, message: str) -> TemplateExecError:
        name = self.tree.name
        if self.node is None:
            return TemplateExecError(f"template: {name}: {message}")
        location = self.tree.location(self.node)
        return TemplateExecError(
            f'template: {location}: executing "{name}" at <{self.node}>: {message}'
        )

    # Variables

    def mark(self) -> int:
        return len(self.vars)

    def pop(self, mark: int) -> None:
        del self.vars[mark:]

    def push(self, name: str, value: Any) -> None:
        self.vars.append([name, value])

    def set_var(self, name: str, value: Any) -> None:
        for slot in reversed(self.vars):
            if slot[0] == name:
                slot[1] = value
                return
        raise self.error(f"undefined variable: {name}")

    def var(self, name: str) -> Any:
        for slot in reversed(self.vars):
            if slot[0] == name:
                return slot[1]
        raise self.error(f"undefined variable: {name}")

    # Walking

    def walk(self, dot: Any, node: Node) -> None:
        self.at(node)
        if isinstance(node, TextNode):
            self.out.append(node.text)
        elif isinstance(node, ListNode):
            for child in node.nodes:
                self.walk(dot, child)
        elif isinstance(node, ActionNode):
            value = self.eval_pipeline(dot, node.pipe)
            if not node.pipe.decl:
                self.out.append(format_value(value))
        elif isinstance(node, (IfNode, WithNode)):
            self.walk_if_or_with(dot, node)
        elif isinstance(node, RangeNode):
            self.walk_range(dot, node)
        elif isinstance(node, TemplateNode):
            self.walk_template(dot, node)
        elif isinstance(node, BreakNode):
            raise _Break()
        elif isinstance(node, ContinueNode):
            raise _Continue()
        else:
            raise self.error(f"unknown node: {node}")

    def walk_if_or_with(self, dot: Any, node: BranchNode) -> None:
        mark = self.mark()
        try:
            value = self.eval_pipeline(dot, node.pipe)
            if truth(value):
                self.walk(value if isinstance(node, WithNode) else dot, node.body)
            elif node.else_body is not None:
                self.walk(dot, node.else_body)
        finally:
            self.pop(mark)

    def walk_range(self, dot: Any, node: RangeNode) -> None:
        self.at(node)
        mark = self.mark()
        try:
            value = self.eval_pipeline(dot, node.pipe, declare=False)
            ran = False
            for key, elem in self._range_items(value):
                ran = True
                iteration = self.mark()
                if len(node.pipe.decl) == 1:
                    self._bind(node.pipe, 0, elem)
                elif len(node.pipe.decl) == 2:
                    self._bind(node.pipe, 0, key)
                    self._bind(node.pipe, 1, elem)
                try:
                    self.walk(elem, node.body)
                except _Continue:
                    pass
                except _Break:
                    break
                finally:
                    self.pop(iteration)
            if not ran and node.else_body is not None:
                self.walk(dot, node.else_body)
        finally:
            self.pop(mark)

    def _bind(self, pipe: PipeNode, index: int, value: Any) -> None:
        if pipe.is_assign:
            self.set_var(pipe.decl[index], value)
        else:
            self.push(pipe.decl[index], value)

    def _range_items(self, value: Any) -> Iterable[tuple[Any, Any]]:
        if value is None or value is MISSING:
            return []
        if isinstance(value, Mapping):
            return [(k, value[k]) for k in sorted(value)]
        if isinstance(value, (list, tuple)):
            return enumerate(value)
        if isinstance(value, int) and not isinstance(value, bool):
            if value > MAX_RANGE_COUNT:
                raise self.error(f"range count {value} exceeds maximum ({MAX_RANGE_COUNT})")
            return ((i, i) for i in range(value))
        raise self.error(f"range can't iterate over {format_value(value)}")

    def walk_template(self, dot: Any, node: TemplateNode) -> None:
        self.at(node)
        tree = self.trees.get(node.name)
        if tree is None:
            raise self.error(f'template "{node.name}" not defined')
        if self.depth >= MAX_TEMPLATE_DEPTH:
            raise self.error(f"exceeded maximum template depth ({MAX_TEMPLATE_DEPTH})")
        value = self.eval_pipeline(dot, node.pipe) if node.pipe is not None else None
        child = _State(self.trees, self.funcs, tree, self.out, self.depth + 1, value)
        child.walk(value, tree.root)

    # Evaluation

    def eval_pipeline(self, dot: Any, pipe: PipeNode, declare: bool = True) -> Any:
        self.at(pipe)
        value: Any = MISSING
        final: Any = _NO_FINAL
        for cmd in pipe.cmds:
            value = self.eval_command(dot, cmd, final)
            final = value
        if declare:
            for name in pipe.decl:
                if pipe.is_assign:
                    self.set_var(name, value)
                else:
                    self.push(name, value)
        return value

    def eval_command(self, dot: Any, cmd: CommandNode, final: Any) -> Any:
        first = cmd.args[0]
        self.at(first)
        if isinstance(first, FieldNode):
            return self.eval_field_chain(dot, dot, first, first.idents, cmd.args, final)
        if isinstance(first, ChainNode):
            receiver = self.eval_arg(dot, first.node)
            return self.eval_field_chain(dot, receiver, first, first.fields, cmd.args, final)
        if isinstance(first, IdentifierNode):
            return self.eval_function(dot, first, cmd.args, final)
        if isinstance(first, VariableNode):
            value = self.var(first.name)
            if first.idents:
                return self.eval_field_chain(dot, value, first, first.idents, cmd.args, final)
            self._no_args(first, cmd.args, final)
            return value
        if isinstance(first, PipeNode):
            self._no_args(first, cmd.args, final)
            mark = self.mark()
            try:
                return self.eval_pipeline(dot, first)
            finally:
                self.pop(mark)
        self._no_args(first, cmd.args, final)
        return self.eval_arg(dot, first)

    def _no_args(self, node: Node, args: Sequence[Node], final: Any) -> None:
        if len(args) > 1 or final is not _NO_FINAL:
            raise self.error(f"can't give argument to non-function {node}")

    def eval_arg(self, dot: Any, node: Node) -> Any:
        self.at(node)
        if isinstance(node, DotNode):
            return dot
        if isinstance(node, NilNode):
            return None
        if isinstance(node, BoolNode):
            return node.value
        if isinstance(node, NumberNode):
            return node.value
        if isinstance(node, StringNode):
            return node.value
        if isinstance(node, FieldNode):
            return self.eval_field_chain(dot, dot, node, node.idents, [node], _NO_FINAL)
        if isinstance(node, VariableNode):
            value = self.var(node.name)
            if node.idents:
                return self.eval_field_chain(dot, value, node, node.idents, [node], _NO_FINAL)
            return value
        if isinstance(node, ChainNode):
            receiver = self.eval_arg(dot, node.node)
            return self.eval_field_chain(dot, receiver, node, node.fields, [node], _NO_FINAL)
        if isinstance(node, PipeNode):
            mark = self.mark()
            try:
                return self.eval_pipeline(dot, node)
            finally:
                self.pop(mark)
        if isinstance(node, IdentifierNode):
            return self.eval_function(dot, node, [node], _NO_FINAL)
        raise self.error(f"can't handle {node} as argument")

    def eval_field_chain(
        self,
        dot: Any,
        receiver: Any,
        node: Node,
        idents: list[str],
        args: Sequence[Node],
        final: Any
    ) -> Any:
        for ident in idents[:-1]:
            receiver = self.eval_field(dot, ident, node, [node], _NO_FINAL, receiver)
        return self.eval_field(dot, idents[-1], node, args, final, receiver)

    def eval_field(
        self,
        dot: Any,
        name: str,
        node: Node,
        args: Sequence[Node],
        final: Any,
        receiver: Any
    ) -> Any:
        has_args = len(args) > 1 or final is not _NO_FINAL
        if receiver is None or receiver is MISSING:
            raise self.error(f"nil pointer evaluating interface {{}}.{name}")

        fields = getattr(type(receiver), "template_fields", None)
        if fields and name in fields:
            attr = getattr(receiver, fields[name])
            if callable(attr):
                return self.call(name, attr, [self.eval_arg(dot, a) for a in args[1:]], final)
            if has_args:
                raise self.error(f"{name} has arguments but cannot be invoked as function")
            return attr

        if isinstance(receiver, Mapping):
            if has_args:
                raise self.error(f"{name} is not a method but has arguments")
            if name in receiver:
                return receiver[name]
            return "" if fields else MISSING

        raise self.error(f"can't evaluate field {name} in type {go_type_name(receiver)}")

    def eval_function(self, dot: Any, node: IdentifierNode, args: Sequence[Node], final: Any) -> Any:
        self.at(node)
        name = node.name
        func = self.funcs.get(name)
        if func is None:
            raise self.error(f'"{name}" is not a defined function')

        if name in SHORT_CIRCUIT:
            return self._short_circuit(dot, name, args[1:], final)

        values = [self.eval_arg(dot, a) for a in args[1:]]
        self.at(node)
        return self.call(name, func, values, final)

    def _short_circuit(self, dot: Any, name: str, args: Sequence[Node], final: Any) -> Any:
        if not args and final is _NO_FINAL:
            raise self.error(f"wrong number of args for {name}: want at least 1 got 0")
        value: Any = MISSING
        operands: list[Callable[[], Any]] = [lambda a=a: self.eval_arg(dot, a) for a in args]
        if final is not _NO_FINAL:
            operands.append(lambda: final)
        for operand in operands:
            value = operand()
            if truth(value) == (name == "or"):
                return value
        return value

    def call(self, name: str, func: Callable[..., Any], values: list[Any], final: Any) -> Any:
        if final is not _NO_FINAL:
            values = [*values, final]
        try:
            inspect.signature(func).bind(*values)
        except TypeError:
            raise self.error(f"wrong number of args for {name}: got {len(values)}") from None
        except ValueError:
            pass
        try:
            return func(*values)
        except TemplateFuncError as e:
            raise self.error(f"error calling {name}: {e}") from e
        except (TypeError, ValueError, KeyError, IndexError, AttributeError, ArithmeticError) as e:
            raise self.error(f"error calling {name}: {e}") from e


class _NoFinal:
    """Marks that no piped value is passed to a command."""


_NO_FINAL = _NoFinal()


def execute(
    trees: Mapping[str, Tree],
    funcs: Mapping[str, Callable[..., Any]],
    name: str,
    data: Any
) -> str:
    """
    Execute the named template against data.

    Raises:
        TemplateExecError: On any execution failure
    """
    tree = trees.get(name)
    if tree is None:
        raise TemplateExecError(f'template: no template "{name}" associated with template set')
    out: list[str] = []
    state = _State(trees, funcs, tree, out, 0, data)
    try:
        state.walk(data, tree.root)
    except (_Break, _Continue):
        raise state.error("break or continue outside range") from None
    return "".join(out)
