"""
Depth-first walk over a server's address space, printing one line per node
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Set, Tuple

from asyncua import ua

from node_format import (
    NUMERIC_NODEID_TYPES,
    ReadFailure,
    classify_value,
    format_node_id,
    node_class_tag,
)
from opc_utils import status_from_exception, status_of

logger = logging.getLogger(__name__)

OBJECTS_FOLDER = ua.NodeId(ua.ObjectIds.ObjectsFolder, 0)

EXPANDABLE_CLASSES = (ua.NodeClass.Object, ua.NodeClass.View)

INDENT = "  "


@dataclass
class WalkSummary:
    visited: int = 0
    skipped: int = 0
    value_errors: int = 0
    repeated: int = 0


def node_key(node_id: ua.NodeId) -> Tuple[int, str, Any]:
    """Key identifying a node regardless of NodeId encoding (TwoByte/FourByte/Numeric)"""
    kind = "i" if node_id.NodeIdType in NUMERIC_NODEID_TYPES else node_id.NodeIdType.name
    return node_id.NamespaceIndex, kind, node_id.Identifier


async def _read(session, node_id: ua.NodeId, attribute_id: ua.AttributeIds) -> ua.DataValue:
    try:
        return await session.read_attribute(node_id, attribute_id)
    except (ua.UaError, asyncio.TimeoutError, OSError) as e:
        return ua.DataValue(None, status_from_exception(e))


async def describe_node(
    session,
    node_id: ua.NodeId,
    depth: int,
    summary: Optional[WalkSummary] = None,
) -> Optional[ua.NodeClass]:
    """
    Print one node line and return its class

    Args:
        session: Open session (see opc_utils.UaSession)
        node_id: Node to describe
        depth: Depth below the start node, controls indentation
        summary: Optional counters to update

    Returns:
        The node class, or None if the node could not be read and was skipped
    """
    if summary is None:
        summary = WalkSummary()

    class_value = await _read(session, node_id, ua.AttributeIds.NodeClass)
    if not status_of(class_value).is_good() or class_value.Value is None:
        logger.debug(f"Skipping {format_node_id(node_id)}: NodeClass {status_of(class_value).name}")
        summary.skipped += 1
        return None
    name_value = await _read(session, node_id, ua.AttributeIds.BrowseName)
    if not status_of(name_value).is_good() or name_value.Value is None:
        logger.debug(f"Skipping {format_node_id(node_id)}: BrowseName {status_of(name_value).name}")
        summary.skipped += 1
        return None

    try:
        node_class = ua.NodeClass(class_value.Value.Value)
    except ValueError:
        node_class = None
    browse_name = name_value.Value.Value
    name = browse_name.Name if isinstance(browse_name, ua.QualifiedName) else str(browse_name)

    line = f"{INDENT * depth}{name} [{format_node_id(node_id)}] ({node_class_tag(node_class)})"

    if node_class == ua.NodeClass.Variable:
        shown = classify_value(await _read(session, node_id, ua.AttributeIds.Value))
        if isinstance(shown, ReadFailure):
            summary.value_errors += 1
            line += f" {shown.render()}"
        else:
            line += f" = {shown.render()}"

    print(line)
    summary.visited += 1
    return node_class


async def list_references(
    session, node_id: ua.NodeId, follow_continuations: bool = True
) -> List[ua.ReferenceDescription]:
    """
    Collect the references of a node with one browse request

    If the server pages the result, continuation points are followed with
    BrowseNext unless follow_continuations is False, in which case only the
    first page is returned and the remaining continuation point is released.
    """
    references = []
    try:
        result = await session.browse(node_id)
        while result is not None:
            if not status_of(result).is_good():
                logger.debug(f"Browse of {format_node_id(node_id)} returned {status_of(result).name}")
                break
            references.extend(result.References or [])
            if not result.ContinuationPoint:
                break
            if not follow_continuations:
                await session.browse_next(result.ContinuationPoint, release=True)
                break
            result = await session.browse_next(result.ContinuationPoint)
    except (ua.UaError, asyncio.TimeoutError, OSError) as e:
        logger.debug(f"Could not browse {format_node_id(node_id)}: {e}")
    return references


async def browse_address_space(
    session,
    start_node_id: ua.NodeId = OBJECTS_FOLDER,
    max_depth: Optional[int] = None,
    verbose: bool = False,
    follow_continuations: bool = True,
) -> WalkSummary:
    """
    Walk the address space depth-first from a start node

    Object and View nodes are expanded through their forward references.
    A node is printed at most once, so reference cycles terminate. Nodes at
    max_depth are printed but not expanded.

    Args:
        session: Open session (see opc_utils.UaSession)
        start_node_id: First node to visit, printed at depth 0
        max_depth: Optional depth cap, None for unlimited
        verbose: Report the number of references found at the start node
        follow_continuations: Follow BrowseNext continuation points

    Returns:
        Counters for the walk
    """
    summary = WalkSummary()
    seen: Set[Tuple[int, str, Any]] = set()
    stack: List[Tuple[ua.NodeId, int]] = [(start_node_id, 0)]

    while stack:
        node_id, depth = stack.pop()
        key = node_key(node_id)
        if key in seen:
            summary.repeated += 1
            continue
        seen.add(key)

        node_class = await describe_node(session, node_id, depth, summary)
        if node_class not in EXPANDABLE_CLASSES:
            continue
        if max_depth is not None and depth >= max_depth:
            continue

        references = await list_references(session, node_id, follow_continuations)
        if verbose and depth == 0 and references:
            print(f"{INDENT}Found {len(references)} references to browse")

        children = [ref.NodeId for ref in references if ref.IsForward]
        # Reversed so the first child is popped first
        for child in reversed(children):
            stack.append((child, depth + 1))

    return summary
