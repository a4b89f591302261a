"""
Display formatting for node identifiers, node classes and variable values
"""
import base64
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from asyncua import ua
from asyncua.ua.uatypes import win_epoch_to_datetime

from opc_utils import status_of


NUMERIC_NODEID_TYPES = (
    ua.NodeIdType.TwoByte,
    ua.NodeIdType.FourByte,
    ua.NodeIdType.Numeric,
)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_node_id(node_id: ua.NodeId) -> str:
    """
    Format a node identifier as ns=<index>;<kind>=<identifier>

    Args:
        node_id: Node identifier (NodeId or ExpandedNodeId)

    Returns:
        e.g. "ns=0;i=85", "ns=2;s=Line1.Temp"
    """
    prefix = f"ns={node_id.NamespaceIndex}"
    if node_id.NodeIdType in NUMERIC_NODEID_TYPES:
        return f"{prefix};i={node_id.Identifier}"
    if node_id.NodeIdType == ua.NodeIdType.String:
        return f"{prefix};s={node_id.Identifier}"
    if node_id.NodeIdType == ua.NodeIdType.Guid:
        return f"{prefix};g={node_id.Identifier}"
    if node_id.NodeIdType == ua.NodeIdType.ByteString:
        return f"{prefix};b={base64.b64encode(node_id.Identifier).decode('ascii')}"
    return f"{prefix};{node_id.Identifier}"


def node_class_tag(node_class: Optional[ua.NodeClass]) -> str:
    if node_class is None or node_class == ua.NodeClass.Unspecified:
        return "Unknown"
    try:
        return ua.NodeClass(node_class).name
    except ValueError:
        return "Unknown"


@dataclass(frozen=True)
class BooleanValue:
    value: bool

    def render(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class UnsignedValue:
    value: int

    def render(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class FloatValue:
    value: float

    def render(self) -> str:
        return f"{self.value:.2f}"


@dataclass(frozen=True)
class TimestampValue:
    value: datetime

    def render(self) -> str:
        return self.value.strftime(TIMESTAMP_FORMAT)


@dataclass(frozen=True)
class OtherValue:
    """Any value outside the supported kinds; only its type name is shown"""
    type_name: str

    def render(self) -> str:
        return f"[{self.type_name}]"


@dataclass(frozen=True)
class ReadFailure:
    status: int

    def render(self) -> str:
        return f"[Read error: 0x{self.status:08X}]"


DisplayValue = Union[
    BooleanValue, UnsignedValue, FloatValue, TimestampValue, OtherValue, ReadFailure
]


def to_timestamp(value: Union[datetime, int]) -> datetime:
    """Accept a decoded datetime or a raw tick count (100 ns since 1601-01-01)"""
    if isinstance(value, datetime):
        return value
    return win_epoch_to_datetime(int(value))


def classify_value(data_value: ua.DataValue) -> DisplayValue:
    """
    Map a DataValue read from a Variable node onto a display variant

    A bad status or an empty variant is a read failure.
    """
    status = status_of(data_value)
    if not status.is_good():
        return ReadFailure(status.value)

    variant = data_value.Value
    if variant is None or variant.VariantType == ua.VariantType.Null:
        return ReadFailure(status.value)

    # Arrays are shown by type name only
    if isinstance(variant.Value, (list, tuple)):
        return OtherValue(variant.VariantType.name)

    variant_type = variant.VariantType
    if variant_type == ua.VariantType.Boolean:
        return BooleanValue(bool(variant.Value))
    if variant_type in (ua.VariantType.UInt16, ua.VariantType.UInt32):
        return UnsignedValue(int(variant.Value))
    if variant_type == ua.VariantType.Float:
        return FloatValue(float(variant.Value))
    if variant_type == ua.VariantType.DateTime:
        return TimestampValue(to_timestamp(variant.Value))
    return OtherValue(variant_type.name)
