"""
Newick format parser module for phylogenetic trees.

This module provides functionality to parse Newick format strings into tree structures.
"""

from .newick_parser import (
    parse_newick,
    split_token,
    flush_meta_buffer,
    flush_character_buffer,
    flush_length_buffer,
    flush_buffer,
    close_node,
    create_new_node,
    init_nodestack,
)

__all__ = [
    "parse_newick",
    "split_token",
    "flush_meta_buffer",
    "flush_character_buffer",
    "flush_length_buffer",
    "flush_buffer",
    "close_node",
    "create_new_node",
    "init_nodestack",
]
