#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
GreeSocket -- An abstract base class for the single UDP socket a Gree controller talks through. It:

  1. Receives and decodes GreeMessages from devices on the local network
  2. Hands each decoded message to a subclass hook, and then to any number of async subscribers
  3. Sends GreeMessages to a unicast or broadcast address

  The subscriber interface is a simple async iterator that returns a sequence of
  GreeReceivedMessage tuples until the socket is closed.

  Subclasses must implement create_socket_binding() to create and bind the low-level socket.

  All sends and receives happen on the event loop thread, so the socket can be shared by the
  scanner and by every device session without locking.
"""

from __future__ import annotations


import asyncio
from asyncio import Future
import socket
from abc import ABC, abstractmethod

from .internal_types import *
from .pkg_logging import logger
from .exceptions import GreeError, GreeDecodeError, GreeTransportError
from .gree_message import GreeMessage

MAX_QUEUE_SIZE = 1000

GreeReceivedMessage = Tuple['GreeSocketBinding', HostAndPort, GreeMessage]
"""A decoded message, together with the binding it arrived on and the address of its sender."""

class GreeSocketBinding:
    """
    The low-level bound datagram socket of a GreeSocket, together with the asyncio
    transport and protocol that loop.create_datagram_endpoint attaches to it.
    """

    gree_socket: Optional[GreeSocket] = None
    """The GreeSocket that owns this binding; None until attached."""

    sock: Optional[socket.socket] = None

    transport: Optional[asyncio.DatagramTransport] = None
    """The asyncio transport; None before the endpoint is created and after it is closed."""

    local_addr: HostAndPort
    """The local address and port the socket is bound to."""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        local_addr = sock.getsockname()
        assert isinstance(local_addr, tuple)
        self.local_addr = (local_addr[0], local_addr[1])

    def attach_to_gree_socket(self, gree_socket: GreeSocket) -> None:
        if not self.gree_socket is None and self.gree_socket is not gree_socket:
            raise GreeError(f"{self} is already attached to another GreeSocket")
        self.gree_socket = gree_socket

    def sendto(self, message: GreeMessage, addr: HostAndPort) -> None:
        """Sends a message without waiting for it to be delivered.

        Raises GreeTransportError if the socket is closed or the send fails immediately."""
        logger.debug(f"Sending to {addr}: {message}")
        if self.transport is None:
            raise GreeTransportError(f"Cannot send to {addr}: {self} is not open")
        try:
            self.transport.sendto(message.raw_data, addr)
        except OSError as e:
            raise GreeTransportError(f"Send to {addr} via {self} failed: {e}") from e

    def close(self) -> None:
        if not self.transport is None:
            try:
                self.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport of {self}: {e}")
            self.transport = None
        if not self.sock is None:
            try:
                self.sock.close()
            except OSError as e:
                logger.error(f"Error closing socket of {self}: {e}")
            self.sock = None

    def __str__(self) -> str:
        return f"GreeSocketBinding({self.local_addr[0]}:{self.local_addr[1]})"

    def __repr__(self) -> str:
        return str(self)

class _GreeSocketProtocol(asyncio.DatagramProtocol):
    """Forwards asyncio datagram events to the GreeSocket that owns a binding.

    An exception escaping a GreeSocket callback ends the GreeSocket."""

    socket_binding: GreeSocketBinding

    def __init__(self, socket_binding: GreeSocketBinding):
        self.socket_binding = socket_binding

    @property
    def gree_socket(self) -> GreeSocket:
        assert not self.socket_binding.gree_socket is None
        return self.socket_binding.gree_socket

    def connection_made(self, transport: asyncio.BaseTransport):
        try:
            self.socket_binding.transport = transport # type: ignore[assignment]
            self.gree_socket.connection_made(self.socket_binding)
        except BaseException as e:
            self.gree_socket.set_final_exception(e)
            raise

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        try:
            self.gree_socket.datagram_received(self.socket_binding, addr, data)
        except BaseException as e:
            self.gree_socket.set_final_exception(e)
            raise

    def error_received(self, exc: Exception):
        try:
            self.gree_socket.error_received(self.socket_binding, exc)
        except BaseException as e:
            self.gree_socket.set_final_exception(e)
            raise

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.socket_binding.transport = None
        self.gree_socket.connection_lost(self.socket_binding, exc)


class GreeMessageSubscriber(
        AsyncContextManager['GreeMessageSubscriber'],
        AsyncIterable[GreeReceivedMessage]
      ):
    """A bounded queue of the messages received by a GreeSocket while subscribed.

    Usage:
        async with GreeMessageSubscriber(gree_socket) as subscriber:
            async for socket_binding, addr, message in subscriber:
                ...
    """

    gree_socket: GreeSocket
    queue: asyncio.Queue[Optional[GreeReceivedMessage]]

    final_result: Future[None]
    """Completed when the subscription ends, with the exception that ended the socket, if any."""

    eos: bool = False
    """True once no more messages will be queued."""

    eos_exc: Optional[Exception] = None

    def __init__(self, gree_socket: GreeSocket, max_queue_size: int=MAX_QUEUE_SIZE):
        self.gree_socket = gree_socket
        self.queue = asyncio.Queue(max_queue_size)
        self.final_result = asyncio.get_running_loop().create_future()

    async def __aenter__(self) -> GreeMessageSubscriber:
        await self.gree_socket.add_subscriber(self)
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.gree_socket.remove_subscriber(self)
        self.on_end_of_stream()
        self._finish()
        try:
            # ensure that final_result has been awaited
            await self.final_result
        except BaseException:
            pass
        return False

    async def iter_messages(self) -> AsyncIterator[GreeReceivedMessage]:
        while True:
            result = await self.receive()
            if result is None:
                break
            yield result

    def __aiter__(self) -> AsyncIterator[GreeReceivedMessage]:
        return self.iter_messages()

    def _finish(self) -> None:
        if not self.final_result.done():
            if self.eos_exc is None:
                self.final_result.set_result(None)
            else:
                self.final_result.set_exception(self.eos_exc)

    async def receive(self) -> Optional[GreeReceivedMessage]:
        """Returns the next message, or None once the stream has ended and the queue is drained.
           Raises the exception that ended the GreeSocket, if there was one."""
        if self.final_result.done():
            await self.final_result
            return None
        try:
            result = await self.queue.get()
        except BaseException as e:
            if not self.final_result.done():
                self.final_result.set_exception(e)
            raise
        if result is None:
            self._finish()
            await self.final_result
        return result

    def on_message(self, socket_binding: GreeSocketBinding, addr: HostAndPort, message: GreeMessage) -> None:
        if not self.eos:
            try:
                self.queue.put_nowait((socket_binding, addr, message))
            except asyncio.QueueFull:
                logger.warning(f"Subscriber queue full, dropping message from {addr}: {message}")

    def on_end_of_stream(self, exc: Optional[Exception]=None) -> None:
        if not self.eos:
            self.eos = True
            self.eos_exc = exc
            try:
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # the reader will drain the queue and then find final_result done
                self._finish()

class GreeSocket(AsyncContextManager['GreeSocket'], ABC):
    """
    An abstract async Gree socket. Subclasses create the low-level socket in
    create_socket_binding() and dispatch decoded messages in message_received().
    """

    final_result: Future[None]
    """A future that is set when the GreeSocket is stopped. Must be created inside a running event loop."""

    message_subscribers: Set[GreeMessageSubscriber]

    _socket_binding: Optional[GreeSocketBinding] = None

    def __init__(self):
        self.final_result = Future()
        self.message_subscribers = set()

    @property
    def socket_binding(self) -> GreeSocketBinding:
        if self._socket_binding is None:
            raise GreeTransportError(f"{self.__class__.__name__} has not been started")
        return self._socket_binding

    def attach_socket_binding(self, socket_binding: GreeSocketBinding) -> None:
        if not self._socket_binding is None:
            raise GreeError(f"{self.__class__.__name__} already has a socket binding")
        socket_binding.attach_to_gree_socket(self)
        self._socket_binding = socket_binding
        logger.debug(f"Attached {socket_binding}")

    async def add_subscriber(self, subscriber: GreeMessageSubscriber) -> None:
        self.message_subscribers.add(subscriber)

    async def remove_subscriber(self, subscriber: GreeMessageSubscriber) -> None:
        self.message_subscribers.discard(subscriber)

    @abstractmethod
    async def create_socket_binding(self) -> GreeSocketBinding:
        """Creates and binds the datagram socket. Must be overridden by subclasses."""
        raise NotImplementedError()

    async def finish_start(self) -> None:
        """Called once the socket is receiving. Subclasses can override to start background work."""
        pass

    async def start(self) -> None:
        try:
            loop = asyncio.get_running_loop()
            try:
                socket_binding = await self.create_socket_binding()
            except OSError as e:
                raise GreeTransportError(f"Unable to bind datagram socket: {e}") from e
            self.attach_socket_binding(socket_binding)
            await loop.create_datagram_endpoint(
                lambda: _GreeSocketProtocol(socket_binding),
                sock=socket_binding.sock
              )
            logger.debug(f"Created datagram endpoint for {socket_binding}")
            await self.finish_start()
        except BaseException as e:
            self.set_final_exception(e)
            try:
                await self.wait_for_done()
            except BaseException:
                pass
            raise

    async def stop(self) -> None:
        """Stops the GreeSocket. connection_lost() follows once the transport has closed."""
        if not self._socket_binding is None and not self._socket_binding.transport is None:
            self._socket_binding.transport.close()
        else:
            self.set_final_result()

    async def wait_for_dependents_done(self) -> None:
        """Called after final_result has been awaited. Subclasses can override to stop background work."""
        pass

    async def wait_for_done(self) -> None:
        try:
            await self.final_result
        finally:
            await self.wait_for_dependents_done()

    async def stop_and_wait(self) -> None:
        await self.stop()
        await self.wait_for_done()

    def connection_made(self, socket_binding: GreeSocketBinding) -> None:
        logger.debug(f"Connection made: {socket_binding}")

    def message_received(self, socket_binding: GreeSocketBinding, addr: HostAndPort, message: GreeMessage) -> None:
        """Called for every successfully decoded message, before subscribers see it.
           Subclasses can override to dispatch messages."""
        pass

    def datagram_received(self, socket_binding: GreeSocketBinding, addr: HostAndPort, data: bytes):
        try:
            message = GreeMessage(raw_data=data)
        except GreeDecodeError as e:
            logger.warning(f"Dropping malformed datagram from {addr}, raw=[{data!r}]: {e}")
            return
        logger.debug(f"Received message from {addr}: {message}")
        try:
            self.message_received(socket_binding, addr, message)
        except Exception as e:
            logger.warning(f"Error handling message {message} from {addr}: {e}")
        for subscriber in list(self.message_subscribers):
            subscriber.on_message(socket_binding, addr, message)

    def error_received(self, socket_binding: GreeSocketBinding, exc: Exception) -> None:
        """Called when a send or receive raises an OSError other than BlockingIOError or InterruptedError.

        Not fatal: an ICMP port unreachable from a device that went away only means the
        device session sees no response.
        """
        logger.warning(f"Error received from {socket_binding}: {exc}")

    def connection_lost(self, socket_binding: GreeSocketBinding, exc: Optional[Exception]) -> None:
        logger.debug(f"Connection lost on {socket_binding}, exc={exc}")
        if exc is None:
            self.set_final_result()
        else:
            self.set_final_exception(exc)

    def _end(self, exc: Optional[Exception]) -> None:
        for subscriber in list(self.message_subscribers):
            subscriber.on_end_of_stream(exc)
        if not self._socket_binding is None:
            self._socket_binding.close()

    def set_final_exception(self, exc: BaseException) -> None:
        if not self.final_result.done():
            logger.debug(f"GreeSocket: Setting final exception: {exc}")
            self.final_result.set_exception(exc)
            self._end(exc if isinstance(exc, Exception) else None)

    def set_final_result(self) -> None:
        if not self.final_result.done():
            logger.debug("GreeSocket: Setting final result to success")
            self.final_result.set_result(None)
            self._end(None)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        if exc is None:
            self.set_final_result()
        else:
            self.set_final_exception(exc)
        try:
            # ensure that final_result has been awaited
            await self.wait_for_done()
        except Exception:
            pass
        return False
