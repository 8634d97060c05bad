#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
GreeDevice -- A session with a single bound Gree air conditioner that:

  1. Binds to the device, obtaining the device-specific AES key
  2. Periodically polls the device status, as long as someone is reading it
  3. Tracks whether the device is answering status requests
  4. Sends commands and caches the acknowledged values

Nothing here waits for a response. Requests are sent fire-and-forget over the shared
socket, and responses are applied as they arrive through handle_message(). A lost
response is only noticed through the count of unanswered status requests.
"""

from __future__ import annotations


import asyncio
import time
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    GREE_PORT,
    GREE_APP_CID,
    GREE_RESULT_OK,
    DEFAULT_REFRESH_INTERVAL,
    STATUS_OBSERVATION_WINDOW,
    MAX_UNRESPONDED_STATUS_REQUESTS,
  )
from .exceptions import (
    GreeError,
    GreeDecodeError,
    GreeTransportError,
    GreeProtocolRejection,
    GreeDeviceUnavailable,
  )
from .crypto import GreeCipher
from .gree_message import GreeMessage
from .scanner import GreeDeviceInfo
from .commands import (
    GreeCommand,
    ALL_FIELD_CODES,
    get_command,
    is_field_code,
    fahrenheit_to_wire,
    wire_to_fahrenheit,
  )

if TYPE_CHECKING:
    from .gree_socket import GreeSocketBinding

class GreeDeviceState(Enum):
    UNBOUND = "unbound"
    BOUND_UNAVAILABLE = "bound_unavailable"
    BOUND_AVAILABLE = "bound_available"

GreeRefreshHandler = Callable[['GreeDevice'], None]
"""A callback invoked whenever the cached status of a device has been updated."""

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

class GreeDevice:
    """A session with a single Gree device."""

    info: GreeDeviceInfo
    """The identity of the device, from its scan response."""

    socket_binding: GreeSocketBinding
    """The shared socket used to send requests."""

    cipher: GreeCipher

    port: int = GREE_PORT
    """The port the device listens on."""

    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    """Time (in seconds) between refresh ticks once bound."""

    key: Optional[str] = None
    """The device-specific AES key; None until the device has accepted a bind request."""

    status: Dict[str, FieldValue]
    """The last known value of each status field, indexed by field code."""

    unavailable: bool = True
    """True until the first status response, and again after MAX_UNRESPONDED_STATUS_REQUESTS
       status requests in a row went unanswered."""

    unresponded_status_requests: int = 0
    """The number of status requests sent since the last status response."""

    last_status_request_time: float
    """The clock time at which get_status() was last called."""

    refresh_task: Optional[asyncio.Task[None]] = None

    refresh_handlers: Dict[int, GreeRefreshHandler]
    """Handlers called after every status update, indexed by ID number."""

    i_next_refresh_handler: int = 0

    _clock: Callable[[], float]
    _bound_event: asyncio.Event
    _available_event: asyncio.Event

    def __init__(
            self,
            info: GreeDeviceInfo,
            socket_binding: GreeSocketBinding,
            cipher: Optional[GreeCipher]=None,
            port: int=GREE_PORT,
            refresh_interval: float=DEFAULT_REFRESH_INTERVAL,
            clock: Callable[[], float]=time.monotonic,
          ) -> None:
        self.info = info
        self.socket_binding = socket_binding
        self.cipher = GreeCipher() if cipher is None else cipher
        self.port = port
        self.refresh_interval = refresh_interval
        self._clock = clock
        self.status = {}
        self.last_status_request_time = clock()
        self.refresh_handlers = {}
        self._bound_event = asyncio.Event()
        self._available_event = asyncio.Event()

    @property
    def mac(self) -> str:
        return self.info.mac

    @property
    def address(self) -> str:
        return self.info.address

    @property
    def sequence_index(self) -> int:
        """The "i" value of outgoing pack messages: 1 while the generic key is in use, 0 afterwards."""
        return 1 if self.key is None else 0

    @property
    def state(self) -> GreeDeviceState:
        if self.key is None:
            return GreeDeviceState.UNBOUND
        if self.unavailable:
            return GreeDeviceState.BOUND_UNAVAILABLE
        return GreeDeviceState.BOUND_AVAILABLE

    def __str__(self) -> str:
        return f"GreeDevice({self.mac}@{self.address}, {self.state.value})"

    def __repr__(self) -> str:
        return str(self)

    # ======================= Caller interface

    def is_unavailable(self) -> bool:
        """Returns whether this device is unavailable. After creation the device is unavailable
           until the first status response arrives. It becomes unavailable again when
           MAX_UNRESPONDED_STATUS_REQUESTS status requests in a row go unanswered."""
        return self.unavailable

    def get_status(self) -> Dict[str, FieldValue]:
        """Returns a copy of the cached status.

        This does not contact the device. Calling it marks the device as observed: refresh ticks
        only poll the device within STATUS_OBSERVATION_WINDOW seconds of the last call.
        """
        self.last_status_request_time = self._clock()
        return dict(self.status)

    def get_value(self, command: Union[str, GreeCommand]) -> Optional[FieldValue]:
        """Returns the cached wire value of a field, by logical name or field code.

        Raises GreeDeviceUnavailable if the device is unavailable. Returns None if the device
        has never reported the field.
        """
        if self.unavailable:
            raise GreeDeviceUnavailable(f"Device {self.mac} is unavailable")
        cmd = get_command(command)
        return self.get_status().get(cmd.code)

    def get_named_value(self, command: Union[str, GreeCommand]) -> Optional[str]:
        """Returns the name of the cached value of a categorical field, e.g. "cool" for mode."""
        cmd = get_command(command)
        value = self.get_value(cmd)
        if value is None:
            return None
        return cmd.name_of(value)

    def get_fahrenheit(self) -> Optional[int]:
        """Returns the target temperature in Fahrenheit, decoded from SetTem and TemRec."""
        set_tem = self.get_value('SetTem')
        if set_tem is None:
            return None
        tem_rec = self.status.get('TemRec', 1)
        return wire_to_fahrenheit(int(set_tem), int(tem_rec))

    def add_refresh_handler(self, handler: GreeRefreshHandler) -> int:
        """Adds a handler to be called whenever the cached status is updated."""
        i = self.i_next_refresh_handler
        self.i_next_refresh_handler += 1
        self.refresh_handlers[i] = handler
        return i

    def remove_refresh_handler(self, i: int) -> None:
        """Removes a previously added refresh handler."""
        del self.refresh_handlers[i]

    async def wait_until_bound(self, timeout: Optional[float]=None) -> bool:
        """Waits for the device to accept the bind request. Returns False on timeout."""
        if not self.key is None:
            return True
        try:
            await asyncio.wait_for(self._bound_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_until_available(self, timeout: Optional[float]=None) -> bool:
        """Waits for a status response. Returns False if none arrived within timeout seconds."""
        if not self.unavailable:
            return True
        try:
            await asyncio.wait_for(self._available_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ======================= Requests

    def bind(self) -> None:
        """Sends a bind request, encrypted with the generic key."""
        logger.debug(f"Binding to {self}")
        self._send_request({
            't': 'bind',
            'uid': 0,
            'mac': self.mac,
          })

    def refresh(self) -> bool:
        """A single refresh tick. Sends a status request if the device is bound and its status has been
           read recently; returns True if a request was sent."""
        if self.key is None:
            return False
        if self.last_status_request_time + STATUS_OBSERVATION_WINDOW <= self._clock():
            logger.debug(f"Skipping status request to idle {self}")
            return False
        self.request_status()
        return True

    def request_status(self) -> None:
        """Sends a status request for every known field."""
        if self.unresponded_status_requests == MAX_UNRESPONDED_STATUS_REQUESTS - 1:
            if not self.unavailable:
                logger.warning(f"{self} stopped responding; marking unavailable")
            self.unavailable = True
            self._available_event.clear()
        self.unresponded_status_requests += 1
        self._send_request({
            't': 'status',
            'mac': self.mac,
            'cols': list(ALL_FIELD_CODES),
          })

    def cmd(self, fields: Mapping[Union[str, GreeCommand], FieldValue]) -> None:
        """Sends a command setting each field to the given wire value, e.g.

            device.cmd({'Pow': 1, 'Mod': 1, 'SwingLfRig': 0, 'SwUpDn': 2})

        Keys may be field codes or logical names; their order is preserved on the wire.
        The cached status is only updated when the device acknowledges the command.
        """
        if self.key is None:
            raise GreeDeviceUnavailable(f"Device {self.mac} is not bound")
        opt: List[str] = []
        p: List[FieldValue] = []
        for command, value in fields.items():
            if not _is_number(value):
                raise GreeError(f"Value for {command} must be a number, got {value!r}")
            opt.append(get_command(command).code)
            p.append(value)
        logger.debug(f"Sending command to {self}: {dict(zip(opt, p))}")
        self._send_request({
            't': 'cmd',
            'opt': opt,
            'p': p,
          })

    def set_value(self, command: Union[str, GreeCommand], value: FieldValue) -> None:
        self.cmd({get_command(command).code: value})

    def set_named_value(self, command: Union[str, GreeCommand], value_name: str) -> None:
        """Sets a categorical field by value name, e.g. set_named_value("mode", "cool")."""
        cmd = get_command(command)
        self.cmd({cmd.code: cmd.value_of(value_name)})

    def set_fahrenheit(self, fahrenheit: float) -> None:
        """Sets the target temperature in Fahrenheit."""
        set_tem, tem_rec = fahrenheit_to_wire(fahrenheit)
        self.cmd({'SetTem': set_tem, 'TemRec': tem_rec})

    def _send_request(self, payload: JsonableDict) -> None:
        message = GreeMessage.make_pack(
            index=self.sequence_index,
            cid=GREE_APP_CID,
            tcid=self.mac,
            pack=self.cipher.encrypt(payload, self.key),
          )
        try:
            self.socket_binding.sendto(message, (self.address, self.port))
        except GreeTransportError as e:
            logger.error(f"Request to {self} failed: {e}")

    # ======================= Responses

    def handle_message(self, message: GreeMessage) -> None:
        """Decrypts a pack message from this device and applies it. Messages that are not from this
           device, cannot be decrypted, or do not carry r == 200 are dropped."""
        if message.cid != self.mac:
            logger.debug(f"{self} ignoring message for {message.cid}")
            return
        pack = message.pack
        if pack is None:
            return
        try:
            payload = self.cipher.decrypt(pack, self.key)
        except GreeDecodeError as e:
            logger.warning(f"Dropping undecodable response from {self}: {e}")
            return
        logger.debug(f"Decrypted response from {self}: {payload}")
        result_code = payload.get('r')
        if result_code != GREE_RESULT_OK:
            logger.debug(f"Ignoring {payload.get('t')} response from {self}: {GreeProtocolRejection(result_code)}")
            return
        t = payload.get('t')
        if t == 'bindok':
            self._handle_bindok(payload)
        elif t == 'dat':
            self._handle_dat(payload)
        elif t == 'res':
            self._handle_res(payload)
        else:
            logger.debug(f"Ignoring unexpected {t!r} response from {self}")

    def _handle_bindok(self, payload: JsonableDict) -> None:
        key = payload.get('key')
        if not self.key is None:
            logger.debug(f"{self} already bound; ignoring bindok")
            return
        if not isinstance(key, str) or len(key.encode('utf-8')) != 16:
            logger.warning(f"Dropping bindok from {self} with invalid key {key!r}")
            return
        self.key = key
        self._bound_event.set()
        logger.info(f"Bound to {self}")
        self.start_refresh_task()

    def _handle_dat(self, payload: JsonableDict) -> None:
        cols = payload.get('cols')
        dat = payload.get('dat')
        updates = self._zip_fields(cols, dat)
        if updates is None:
            logger.warning(f"Dropping malformed status response from {self}: {payload}")
            return
        if self.unavailable:
            logger.info(f"{self.mac} is available")
        self.unavailable = False
        self.unresponded_status_requests = 0
        self._available_event.set()
        self._apply(updates)

    def _handle_res(self, payload: JsonableDict) -> None:
        opt = payload.get('opt')
        values = payload.get('val')
        if values is None:
            values = payload.get('p')
        updates = self._zip_fields(opt, values)
        if updates is None:
            logger.warning(f"Dropping malformed command response from {self}: {payload}")
            return
        self._apply(updates)

    def _zip_fields(self, codes: Jsonable, values: Jsonable) -> Optional[List[Tuple[str, FieldValue]]]:
        """Pairs up parallel field code and value lists, leaving out unknown field codes.
           Returns None if the lists are malformed."""
        if not isinstance(codes, list) or not isinstance(values, list) or len(codes) != len(values):
            return None
        result: List[Tuple[str, FieldValue]] = []
        for code, value in zip(codes, values):
            if not isinstance(code, str) or not _is_number(value):
                return None
            if not is_field_code(code):
                logger.debug(f"{self} ignoring unknown field {code}={value}")
                continue
            result.append((code, value))
        return result

    def _apply(self, updates: List[Tuple[str, FieldValue]]) -> None:
        for code, value in updates:
            self.status[code] = value
        for handler in list(self.refresh_handlers.values()):
            try:
                handler(self)
            except Exception as e:
                logger.warning(f"Refresh handler raised exception for {self}: {e}")

    # ======================= Refresh timer

    def start_refresh_task(self) -> None:
        if self.refresh_task is None:
            self.refresh_task = asyncio.create_task(self._run_refresh_task())

    async def _run_refresh_task(self) -> None:
        logger.debug(f"Refresh task for {self} starting, ticking every {self.refresh_interval} seconds")
        try:
            while True:
                await asyncio.sleep(self.refresh_interval)
                try:
                    self.refresh()
                except Exception as e:
                    logger.error(f"Refresh tick for {self} failed: {e}")
        except asyncio.CancelledError:
            logger.debug(f"Refresh task for {self} cancelled; exiting")
            raise

    async def close(self) -> None:
        """Stops the refresh timer. The session itself has no protocol-level teardown."""
        if self.refresh_task is not None:
            self.refresh_task.cancel()
            try:
                await self.refresh_task
            except asyncio.CancelledError:
                pass
            self.refresh_task = None
