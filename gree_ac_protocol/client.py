# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
GreeClient -- A Gree controller that:

  1. Owns the single UDP socket shared by discovery and all device sessions
  2. Broadcasts scan requests a configured number of times
  3. Creates and binds a GreeDevice for every device that answers a scan
  4. Routes device responses to the session whose MAC matches the message "cid"
"""

from __future__ import annotations


import asyncio
import socket

from .internal_types import *
from .pkg_logging import logger
from .config import GreeConfig
from .crypto import GreeCipher
from .gree_message import GreeMessage
from .gree_socket import GreeSocket, GreeSocketBinding, GreeMessageSubscriber
from .scanner import GreeDeviceInfo, scan, parse_dev_response
from .device import GreeDevice

GreeDeviceHandler = Callable[[GreeDevice], None]
"""A callback for newly created device sessions."""

class GreeDiscoveryRequest(
        AsyncContextManager['GreeDiscoveryRequest'],
        AsyncIterable[GreeDeviceInfo]
      ):
    """An object that collects the scan responses received by a GreeClient within a time window,
       within an AsyncContextManager/AsyncIterable interface."""

    gree_client: GreeClient
    msg_subscriber: GreeMessageSubscriber
    response_wait_time: float
    max_responses: int
    end_time: float = 0.0

    def __init__(
            self,
            gree_client: GreeClient,
            response_wait_time: float,
            max_responses: int=0,
          ):
        """Create an async context manager/iterable that yields the identity of each device that
        answers a scan, once per device.

        Parameters:
            gree_client:        The GreeClient whose socket receives the responses.
            response_wait_time: The amount of time (in seconds) to wait for responses to come in.
            max_responses:      The maximum number of devices to return. If 0 (the default), all devices
                                   heard within response_wait_time will be returned.

        Usage:
            async with GreeDiscoveryRequest(gree_client, 5.0) as request:
                async for info in request:
                    print(info.mac)
        """
        self.gree_client = gree_client
        self.response_wait_time = response_wait_time
        self.max_responses = max_responses
        self.msg_subscriber = GreeMessageSubscriber(self.gree_client)

    async def __aenter__(self) -> GreeDiscoveryRequest:
        # Subscribe before the scan loop sends anything so that no response is missed.
        await self.msg_subscriber.__aenter__()
        loop = asyncio.get_running_loop()
        self.end_time = loop.time() + self.response_wait_time
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        return await self.msg_subscriber.__aexit__(exc_type, exc, tb)

    async def iter_devices(self) -> AsyncIterator[GreeDeviceInfo]:
        loop = asyncio.get_running_loop()
        seen: Set[str] = set()
        while True:
            if self.max_responses > 0 and len(seen) >= self.max_responses:
                break
            remaining_time = self.end_time - loop.time()
            if remaining_time <= 0.0:
                break
            try:
                resp_tuple = await asyncio.wait_for(self.msg_subscriber.receive(), remaining_time)
            except asyncio.TimeoutError:
                break
            if resp_tuple is None:
                break
            _, addr, message = resp_tuple
            info = parse_dev_response(message, addr, self.gree_client.cipher)
            if not info is None and not info.mac in seen:
                seen.add(info.mac)
                yield info

    def __aiter__(self) -> AsyncIterator[GreeDeviceInfo]:
        return self.iter_devices()

class GreeClient(GreeSocket, AsyncContextManager['GreeClient']):
    """
    A Gree controller that discovers devices on the local network, binds to them, and
    keeps a GreeDevice session for each of them for as long as the client is running.
    """

    config: GreeConfig
    cipher: GreeCipher

    auto_scan: bool = True
    """If True, the scan loop is started as soon as the socket is up."""

    scan_address: str
    """The resolved broadcast address scan requests are sent to."""

    devices: Dict[str, GreeDevice]
    """The device sessions, indexed by device MAC."""

    scan_task: Optional[asyncio.Task[None]] = None
    """The task that broadcasts scan requests. None if no scan loop is running."""

    device_handlers: Dict[int, GreeDeviceHandler]
    """Handlers called when a device session is created, indexed by ID number."""

    i_next_device_handler: int = 0

    def __init__(
            self,
            config: Optional[GreeConfig]=None,
            cipher: Optional[GreeCipher]=None,
            auto_scan: bool=True,
          ) -> None:
        super().__init__()
        self.config = GreeConfig() if config is None else config
        self.cipher = GreeCipher() if cipher is None else cipher
        self.auto_scan = auto_scan
        self.scan_address = self.config.get_scan_address()
        self.devices = {}
        self.device_handlers = {}

    #@override
    async def create_socket_binding(self) -> GreeSocketBinding:
        """Creates the single broadcast-capable socket shared by the scanner and all devices."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind(('', self.config.port))
        except BaseException:
            sock.close()
            raise
        logger.debug(f"Bound Gree socket to {sock.getsockname()}")
        return GreeSocketBinding(sock)

    async def finish_start(self) -> None:
        if self.auto_scan:
            self.start_scanning()

    async def wait_for_dependents_done(self) -> None:
        """Cancels the scan loop and the refresh timers of all devices."""
        if self.scan_task is not None:
            self.scan_task.cancel()
            try:
                await self.scan_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Exception while cancelling scan task: {e}")
            self.scan_task = None
        for device in list(self.devices.values()):
            await device.close()

    def add_device_handler(self, handler: GreeDeviceHandler) -> int:
        """Adds a handler to be called when a new device session is created."""
        i = self.i_next_device_handler
        self.i_next_device_handler += 1
        self.device_handlers[i] = handler
        return i

    def remove_device_handler(self, i: int) -> None:
        """Removes a previously added device handler."""
        del self.device_handlers[i]

    def get_device(self, mac: str) -> Optional[GreeDevice]:
        return self.devices.get(mac)

    def scan(self) -> bool:
        """Broadcasts a single scan request."""
        return scan(self.socket_binding, self.scan_address, self.config.scan_port)

    def start_scanning(self) -> None:
        """Starts the scan loop, unless one is already running."""
        if self.scan_task is None or self.scan_task.done():
            self.scan_task = asyncio.create_task(self._run_scan_task())

    def discover(self, response_wait_time: Optional[float]=None, max_responses: int=0) -> GreeDiscoveryRequest:
        """Create an async context manager/iterable that yields devices as they answer scans.
           The wait time defaults to the length of the scan loop."""
        if response_wait_time is None:
            response_wait_time = self.config.scan_interval * max(self.config.scan_max_retries, 1)
        return GreeDiscoveryRequest(self, response_wait_time, max_responses=max_responses)

    async def _run_scan_task(self) -> None:
        logger.debug(f"Scan task starting, scanning {self.scan_address}:{self.config.scan_port} "
                     f"{self.config.scan_max_retries} times every {self.config.scan_interval} seconds")
        try:
            for i in range(self.config.scan_max_retries):
                if self.final_result.done():
                    break
                if i > 0:
                    await asyncio.sleep(self.config.scan_interval)
                self.scan()
        except asyncio.CancelledError:
            logger.debug("Scan task cancelled; exiting")
            raise
        logger.debug("Scan task exiting")

    def message_received(self, socket_binding: GreeSocketBinding, addr: HostAndPort, message: GreeMessage) -> None:
        if message.is_dev_response:
            info = parse_dev_response(message, addr, self.cipher)
            if not info is None:
                self.register_device(info)
                return
            # a generic-key response such as bindok can share the envelope shape of a scan response
        if message.is_pack:
            device = None if message.cid is None else self.devices.get(message.cid)
            if device is None:
                logger.debug(f"Ignoring message from unknown device {message.cid} at {addr}")
                return
            device.handle_message(message)

    def register_device(self, info: GreeDeviceInfo) -> GreeDevice:
        """Creates a session for a newly discovered device and starts binding to it. A device that
           already has a session keeps it; if it is still unbound, the bind request is repeated."""
        device = self.devices.get(info.mac)
        if not device is None:
            if device.key is None:
                logger.debug(f"Repeating bind request to {device}")
                device.bind()
            return device
        device = GreeDevice(
            info,
            self.socket_binding,
            cipher=self.cipher,
            port=self.config.port,
            refresh_interval=self.config.refresh_interval,
          )
        self.devices[info.mac] = device
        logger.info(f"Discovered {info}")
        device.bind()
        for handler in list(self.device_handlers.values()):
            try:
                handler(device)
            except Exception as e:
                logger.warning(f"Device handler raised exception for {device}: {e}")
        return device

    async def __aenter__(self) -> GreeClient:
        await super().__aenter__()
        return self
