import ast

from typing import Any, Dict, List, Tuple, Union

from rateshift.exceptions import NewickParseError
from rateshift.node import Node


# ===================================================================
# 1. METADATA PROCESSING FUNCTIONS
# ===================================================================


def split_token(token: str) -> Tuple[str, Any]:
    """
    Split one comment token such as ``rate=0.5`` or ``S:human``.

    Values are read as Python literals where possible, otherwise kept as
    strings. A bare key maps to True.
    """
    if "=" in token:
        name, value = token.split("=", 1)
    elif ":" in token:
        name, value = token.split(":", 1)
    else:
        return token, True

    try:
        parsed_value = ast.literal_eval(value)
    except (ValueError, SyntaxError):
        parsed_value = value

    return name, parsed_value


def flush_meta_buffer(meta_buffer: List[str], stack: List[Node]) -> None:
    """
    Process the metadata buffer and update the current node's values.

    Handles NHX comments (``&&NHX:key=value:...``) and generic
    comma-separated ``key=value`` comments.
    """
    meta_string = "".join(meta_buffer).strip()

    if meta_string.startswith("&&NHX:"):
        tokens = meta_string[6:].split(":")
    else:
        meta_string = meta_string.lstrip("&")
        tokens = meta_string.replace(";", ",").replace(" ", ",").split(",")

    metadata: Dict[str, Any] = {}
    for token in tokens:
        if token.strip():
            name, value = split_token(token.strip())
            metadata[name] = value

    if metadata and stack:
        stack[-1].values.update(metadata)

    meta_buffer.clear()


# ===================================================================
# 2. BUFFER PROCESSING FUNCTIONS
# ===================================================================


def flush_character_buffer(buffer: List[str], stack: List[Node]) -> None:
    """Assign the buffered characters as the name of the current node."""
    if not stack:
        buffer.clear()
        return

    name = "".join(buffer).strip()
    if name:
        # Quoted labels keep their inner text only
        if len(name) >= 2 and name[0] == name[-1] and name[0] in "'\"":
            name = name[1:-1]
        stack[-1].name = name

    buffer.clear()


def flush_length_buffer(buffer: List[str], stack: List[Node]) -> None:
    """
    Parse the buffered characters as the branch length of the current node.

    Raises:
        NewickParseError: If the buffer content is not a finite number
    """
    if not stack:
        buffer.clear()
        return

    buffer_value = "".join(buffer).strip()
    if buffer_value:
        try:
            parsed_number = float(buffer_value)
        except ValueError:
            raise NewickParseError(
                f"Invalid branch length {buffer_value!r} on node '{stack[-1].name}'"
            ) from None
        if parsed_number != parsed_number or parsed_number in (
            float("inf"),
            float("-inf"),
        ):
            raise NewickParseError(
                f"Branch length must be finite, got {buffer_value!r}"
            )
        stack[-1].length = parsed_number
    buffer.clear()


def flush_buffer(buffer: List[str], stack: List[Node], mode: str) -> None:
    """
    Process the accumulated buffer based on the current parsing mode.

    Comments are flushed separately, so only the name and length modes
    reach this point.
    """
    if mode == "character_reader":
        flush_character_buffer(buffer, stack)
    elif mode == "length_reader":
        flush_length_buffer(buffer, stack)


# ===================================================================
# 3. NODE STACK MANAGEMENT FUNCTIONS
# ===================================================================


def init_nodestack() -> List[Node]:
    """Initialize the node stack with an empty root node."""
    return [Node()]


def create_new_node(stack: List[Node]) -> List[Node]:
    """Create a child of the node on top of the stack and push it."""
    new_node = Node()
    stack[-1].append_child(new_node)
    stack.append(new_node)
    return stack


def close_node(stack: List[Node]) -> List[Node]:
    stack.pop()
    return stack


# ===================================================================
# 4. CORE PARSING FUNCTIONS
# ===================================================================


def _parse_newick(tokens: str) -> List[Node]:
    """Scan the string once and collect every tree it contains."""
    trees: List[Node] = []
    buffer: List[str] = []
    meta_buffer: List[str] = []
    mode: str = "character_reader"
    node_stack: List[Node] = init_nodestack()
    depth = 0

    for char in tokens:
        if mode == "metadata_reader":
            if char == "]":
                flush_meta_buffer(meta_buffer, node_stack)
                mode = "character_reader"
            else:
                meta_buffer.append(char)
            continue

        if char in "\n\r\t":
            continue

        elif char == "(":
            if not node_stack:
                node_stack = init_nodestack()
            depth += 1
            create_new_node(node_stack)
            mode = "character_reader"

        elif char == ")":
            flush_buffer(buffer, node_stack, mode)
            depth -= 1
            if depth < 0 or len(node_stack) <= 1:
                raise NewickParseError("Unbalanced ')' in Newick string")
            close_node(node_stack)
            mode = "character_reader"

        elif char == ",":
            flush_buffer(buffer, node_stack, mode)
            if len(node_stack) <= 1:
                raise NewickParseError("',' outside of a parenthesised group")
            close_node(node_stack)
            create_new_node(node_stack)
            mode = "character_reader"

        elif char == ":":
            flush_buffer(buffer, node_stack, mode)
            mode = "length_reader"

        elif char == "[":
            flush_buffer(buffer, node_stack, mode)
            mode = "metadata_reader"

        elif char == ";":
            flush_buffer(buffer, node_stack, mode)
            if depth != 0 or len(node_stack) != 1:
                raise NewickParseError("Unbalanced '(' in Newick string")
            trees.append(node_stack.pop())

            # Reset parser state for the next tree
            node_stack = []
            buffer = []
            mode = "character_reader"

        else:
            buffer.append(char)

    if mode == "metadata_reader":
        raise NewickParseError("Unterminated '[' comment in Newick string")
    if node_stack and (buffer or node_stack[0].children):
        flush_buffer(buffer, node_stack, mode)
        if depth != 0 or len(node_stack) != 1:
            raise NewickParseError("Unbalanced '(' in Newick string")
        trees.append(node_stack.pop())

    return trees


# ===================================================================
# 5. PUBLIC API FUNCTIONS
# ===================================================================


def parse_newick(tokens: str, force_list: bool = False) -> Union[Node, List[Node]]:
    """
    Parse a Newick string into a tree or list of trees.

    Args:
        tokens: Newick text holding one or more ';'-terminated trees
        force_list: Return a list even when the text holds a single tree

    Raises:
        NewickParseError: If the string is empty or malformed
    """
    trees = _parse_newick(tokens)
    if not trees:
        raise NewickParseError("No tree found in Newick string")

    if len(trees) == 1 and not force_list:
        return trees[0]
    return trees

