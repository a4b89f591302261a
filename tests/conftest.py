"""
Shared fixtures for the OPC UA browser tests
"""
import os
import sys

import pytest
from asyncua import ua

# Add parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from address_space import OBJECTS_FOLDER, node_key
from opc_utils import ConnectionFailed


class FakeNode:
    def __init__(self, node_id, name, node_class, value=None, value_status=None):
        self.node_id = node_id
        self.name = name
        self.node_class = node_class
        self.value = value
        self.value_status = value_status
        self.references = []


class FakeSession:
    """
    In-memory stand-in for opc_utils.UaSession

    Nodes and references are added by the test. Every call is recorded in
    `calls` as (operation, node_id) so tests can check what was requested.
    If page_size is set, browse results are split into pages linked by
    continuation points.
    """

    def __init__(self, url="opc.tcp://test:4840", timeout_ms=5000, page_size=None, connect_status=None):
        self.url = url
        self.timeout_ms = timeout_ms
        self.page_size = page_size
        self.connect_status = connect_status
        self.connected = False
        self.nodes = {}
        self.calls = []
        self.errors = {}
        self._pending = {}

    def add_node(self, node_id, name, node_class=ua.NodeClass.Object, value=None, parent=None, value_status=None):
        self.nodes[node_key(node_id)] = FakeNode(node_id, name, node_class, value, value_status)
        if parent is not None:
            self.add_reference(parent, node_id)
        return node_id

    def add_reference(self, source, target, is_forward=True):
        self.nodes[node_key(source)].references.append((target, is_forward))

    def fail_on(self, node_id, error, operations=("read", "browse")):
        """Raise error from the given operations on node_id"""
        for operation in operations:
            self.errors[operation, node_key(node_id)] = error

    def calls_for(self, operation):
        return [node_id for op, node_id in self.calls if op == operation]

    async def connect(self):
        self.calls.append(("connect", None))
        if self.connect_status is not None:
            raise ConnectionFailed(self.url, ua.StatusCode(self.connect_status))
        self.connected = True

    async def disconnect(self):
        self.calls.append(("disconnect", None))
        self.connected = False

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.disconnect()

    def _lookup(self, operation, node_id):
        error = self.errors.get((operation, node_key(node_id)))
        if error is not None:
            raise error
        node = self.nodes.get(node_key(node_id))
        if node is None:
            raise ua.UaStatusCodeError(ua.StatusCodes.BadNodeIdUnknown)
        return node

    async def read_attribute(self, node_id, attribute_id):
        self.calls.append(("read", node_id))
        node = self._lookup("read", node_id)
        if attribute_id == ua.AttributeIds.NodeClass:
            return ua.DataValue(ua.Variant(node.node_class.value, ua.VariantType.Int32))
        if attribute_id == ua.AttributeIds.BrowseName:
            name = ua.QualifiedName(Name=node.name, NamespaceIndex=node_id.NamespaceIndex)
            return ua.DataValue(ua.Variant(name, ua.VariantType.QualifiedName))
        if attribute_id == ua.AttributeIds.Value:
            if node.value_status is not None:
                return ua.DataValue(None, ua.StatusCode(node.value_status))
            return ua.DataValue(node.value)
        raise ua.UaStatusCodeError(ua.StatusCodes.BadAttributeIdInvalid)

    def _page(self, references):
        result = ua.BrowseResult()
        if self.page_size is not None and len(references) > self.page_size:
            token = f"cp{len(self._pending)}".encode()
            self._pending[token] = references[self.page_size:]
            references = references[:self.page_size]
            result.ContinuationPoint = token
        result.References = references
        return result

    async def browse(self, node_id):
        self.calls.append(("browse", node_id))
        node = self._lookup("browse", node_id)
        references = []
        for target, is_forward in node.references:
            ref = ua.ReferenceDescription()
            ref.NodeId = target
            ref.IsForward = is_forward
            references.append(ref)
        return self._page(references)

    async def browse_next(self, continuation_point, release=False):
        references = self._pending.pop(continuation_point)
        if release:
            self.calls.append(("release", continuation_point))
            return None
        self.calls.append(("browse_next", continuation_point))
        return self._page(references)


def build_tree(session, depth, branching):
    """
    Add a strict tree of Object nodes below the Objects folder

    Nodes are named L<level>_<path>, e.g. L2_0_1.
    """
    session.add_node(OBJECTS_FOLDER, "Objects")
    counter = [1000]

    def add_children(parent, level, path):
        if level > depth:
            return
        for i in range(branching):
            counter[0] += 1
            child_path = f"{path}_{i}" if path else str(i)
            child = session.add_node(ua.NodeId(counter[0], 1), f"L{level}_{child_path}", parent=parent)
            add_children(child, level + 1, child_path)

    add_children(OBJECTS_FOLDER, 1, "")


@pytest.fixture
def fake_session():
    session = FakeSession()
    session.add_node(OBJECTS_FOLDER, "Objects")
    return session


@pytest.fixture
def session_factory(fake_session):
    """Factory for browse_server.run() that hands out the fake session"""
    def factory(url, timeout_ms):
        fake_session.url = url
        fake_session.timeout_ms = timeout_ms
        return fake_session
    return factory
