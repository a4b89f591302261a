"""
Shared utilities for OPC UA client sessions
"""
import asyncio
from asyncua import Client, ua
from typing import Optional
import logging

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5000


class ConnectionFailed(Exception):
    """Raised when a session to the server could not be opened"""

    def __init__(self, url: str, status: ua.StatusCode):
        self.url = url
        self.status = status
        super().__init__(f"Connection to {url} failed: {format_status(status)}")


def format_status(status: ua.StatusCode) -> str:
    return f"{status.name} (0x{status.value:08X})"


def status_of(value) -> ua.StatusCode:
    """Status of a DataValue or BrowseResult; an omitted status means Good"""
    status = value.StatusCode
    return status if status is not None else ua.StatusCode()


def status_from_exception(exc: BaseException) -> ua.StatusCode:
    """
    Map an exception raised by the client stack to an OPC UA status code

    Args:
        exc: Exception raised during a service call or connect

    Returns:
        The status carried by the exception, or the closest generic status
    """
    if isinstance(exc, ua.UaStatusCodeError):
        return ua.StatusCode(exc.code)
    if isinstance(exc, asyncio.TimeoutError):
        return ua.StatusCode(ua.StatusCodes.BadTimeout)
    if isinstance(exc, ValueError):
        # asyncua rejects endpoints without host or with a non-numeric port
        return ua.StatusCode(ua.StatusCodes.BadTcpEndpointUrlInvalid)
    if isinstance(exc, OSError):
        return ua.StatusCode(ua.StatusCodes.BadConnectionRejected)
    return ua.StatusCode(ua.StatusCodes.BadCommunicationError)


class UaSession:
    """
    One client session against an OPC UA server

    The session is the only handle the browser uses to talk to the server.
    Every call is awaited to completion before the next one is issued.
    """

    def __init__(self, url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.url = url
        self.timeout_ms = timeout_ms
        self._client: Optional[Client] = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self):
        """
        Open the session

        Raises:
            ConnectionFailed: the server could not be reached or refused the session
        """
        logger.info(f"Attempting to connect to {self.url}...")
        try:
            self._client = Client(url=self.url, timeout=self.timeout_ms / 1000)
            await asyncio.wait_for(self._client.connect(), timeout=self.timeout_ms / 1000)
        except (ua.UaError, asyncio.TimeoutError, OSError, ValueError) as e:
            status = status_from_exception(e)
            logger.debug(f"Connect to {self.url} raised {e!r}")
            raise ConnectionFailed(self.url, status) from e
        self._connected = True
        logger.info(f"Connected to OPC UA server at {self.url}")

    async def disconnect(self):
        if not self._connected:
            return
        self._connected = False
        try:
            await self._client.disconnect()
            logger.info(f"Disconnected from {self.url}")
        except (ua.UaError, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"Error while disconnecting from {self.url}: {e}")

    async def __aenter__(self) -> "UaSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.disconnect()

    async def read_attribute(self, node_id: ua.NodeId, attribute_id: ua.AttributeIds) -> ua.DataValue:
        """
        Read a single attribute of a node

        The returned DataValue carries the per-node status; it is not checked here.
        """
        node = self._client.get_node(node_id)
        return await node.read_attribute(attribute_id, raise_on_bad_status=False)

    async def browse(self, node_id: ua.NodeId) -> ua.BrowseResult:
        """
        Browse all forward references of a node, requesting every result field
        """
        desc = ua.BrowseDescription()
        desc.NodeId = node_id
        desc.BrowseDirection = ua.BrowseDirection.Forward
        desc.ReferenceTypeId = ua.NodeId(ua.ObjectIds.References)
        desc.IncludeSubtypes = True
        desc.NodeClassMask = 0
        desc.ResultMask = ua.BrowseResultMask.All

        params = ua.BrowseParameters()
        params.View = ua.ViewDescription()
        params.RequestedMaxReferencesPerNode = 0
        params.NodesToBrowse = [desc]
        results = await self._client.uaclient.browse(params)
        return results[0]

    async def browse_next(self, continuation_point: bytes, release: bool = False) -> Optional[ua.BrowseResult]:
        """
        Fetch the next page of a browse, or release the continuation point
        on the server when release is True
        """
        params = ua.BrowseNextParameters()
        params.ReleaseContinuationPoints = release
        params.ContinuationPoints = [continuation_point]
        results = await self._client.uaclient.browse_next(params)
        return results[0] if results else None
