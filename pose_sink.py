"""
Pose Sink Module
6-DOF pose output: console printout or opentrack UDP receiver
"""

import socket
import struct
from log import log_with_timestamp


class PoseSink:
    """Receiver of forwarded head poses"""

    def update(self, x, y, z, pitch, roll, yaw):
        raise NotImplementedError

    def close(self):
        pass

    def describe(self):
        return self.__class__.__name__


class ConsolePoseSink(PoseSink):
    """Prints every pose on one line"""

    def update(self, x, y, z, pitch, roll, yaw):
        print(f"\rx = {x}, y = {y}, z = {z}, pitch = {pitch}, roll = {roll}, yaw = {yaw}")

    def describe(self):
        return "Console"


class OpenTrackUdpSink(PoseSink):
    """
    opentrack "UDP over network" output

    Each pose is one datagram of six little-endian doubles:
    x, y, z (centimeters), yaw, pitch, roll (degrees).
    """

    PACKET = struct.Struct('<6d')

    def __init__(self, host="127.0.0.1", port=4242):
        """
        Args:
            host: opentrack machine
            port: opentrack UDP input port
        """
        self.address = (host, port)
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.setblocking(False)
        self.send_errors = 0

    @classmethod
    def pack(cls, x, y, z, pitch, roll, yaw):
        """Build the datagram (position converted from meters to centimeters)"""
        return cls.PACKET.pack(x * 100.0, y * 100.0, z * 100.0, yaw, pitch, roll)

    def update(self, x, y, z, pitch, roll, yaw):
        if self.sock is None:
            return

        try:
            self.sock.sendto(self.pack(x, y, z, pitch, roll, yaw), self.address)
        except OSError as e:
            self.send_errors += 1
            # Only warn for the first errors
            if self.send_errors <= 3:
                log_with_timestamp(f"Pose could not be sent to {self.address[0]}:{self.address[1]}: {e}", "WARNING")

    def close(self):
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def describe(self):
        return f"opentrack UDP {self.address[0]}:{self.address[1]}"


def create_sink(sink_config):
    """
    Create the pose sink from the 'sink' config section

    Args:
        sink_config: dict with type, host, port

    Returns:
        PoseSink
    """
    sink_type = sink_config.get('type', 'udp')

    if sink_type == 'console':
        return ConsolePoseSink()
    if sink_type == 'udp':
        return OpenTrackUdpSink(host=sink_config.get('host', '127.0.0.1'),
                                port=int(sink_config.get('port', 4242)))

    raise ValueError(f"Unknown sink type: {sink_type}")
