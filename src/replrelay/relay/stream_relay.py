"""Unidirectional stream copy between two connections."""

from replrelay.relay.connection import Connection
from replrelay.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BUFFER_SIZE = 4096


class StreamRelay:
    """
    Pipe data from one connection to another until EOF or error.

    One instance covers one direction; a duplex pairing runs two of them as
    independent tasks.

    With ``half_close`` set, EOF from the source is passed on to the
    destination (``write_eof``) and only this direction ends; the source
    stays connected so the opposite direction can keep delivering to it.
    Without it, EOF marks the source disconnected.
    """

    def __init__(
        self,
        source: Connection,
        destination: Connection,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        half_close: bool = False,
    ):
        self.source = source
        self.destination = destination
        self.buffer_size = buffer_size
        self.half_close = half_close
        self.bytes_relayed = 0

    @property
    def name(self) -> str:
        return f"{self.source.role.value}->{self.destination.role.value}"

    async def run(self) -> int:
        """
        Copy bytes until the source closes or either side fails.

        Returns:
            Number of bytes relayed.
        """
        log_prefix = f"[Relay {self.name} {self.source.endpoint}]"
        logger.debug(f"{log_prefix} Started.")

        while self.source.is_connected and self.destination.is_connected:
            try:
                data = await self.source.reader.read(self.buffer_size)
            except OSError as e:
                logger.debug(f"{log_prefix} Read failed: {e}")
                self.source.mark_disconnected()
                break

            if not data:
                if self.half_close:
                    self._forward_eof(log_prefix)
                else:
                    self.source.mark_disconnected()
                break

            try:
                self.destination.writer.write(data)
                await self.destination.writer.drain()
            except OSError as e:
                logger.debug(f"{log_prefix} Write failed: {e}")
                self.destination.mark_disconnected()
                break

            self.bytes_relayed += len(data)

        for conn in (self.source, self.destination):
            if not conn.is_connected:
                conn.mark_disconnected()
                logger.info(f"{conn.role.value.capitalize()} {conn.endpoint} disconnected")

        logger.debug(f"{log_prefix} Finished after {self.bytes_relayed} bytes.")
        return self.bytes_relayed

    def _forward_eof(self, log_prefix: str) -> None:
        self.source.mark_input_closed()
        logger.info(
            f"{self.source.role.value.capitalize()} {self.source.endpoint} "
            f"finished sending"
        )
        if not self.destination.writer.can_write_eof():
            return
        try:
            self.destination.writer.write_eof()
        except OSError as e:
            logger.debug(f"{log_prefix} Forwarding EOF failed: {e}")
            self.destination.mark_disconnected()
