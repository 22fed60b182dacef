"""
Pose output tests
"""

import socket
import struct

import pytest

from pose_sink import ConsolePoseSink, OpenTrackUdpSink, create_sink


def test_udp_packet_layout():
    packet = OpenTrackUdpSink.pack(0.1, 0.2, 1.5, pitch=20.0, roll=10.0, yaw=30.0)

    assert len(packet) == 48
    x, y, z, yaw, pitch, roll = struct.unpack('<6d', packet)
    assert (x, y, z) == pytest.approx((10.0, 20.0, 150.0))
    assert (yaw, pitch, roll) == (30.0, 20.0, 10.0)


def test_udp_sink_sends_datagram():
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(('127.0.0.1', 0))
    receiver.settimeout(2.0)
    port = receiver.getsockname()[1]

    sink = OpenTrackUdpSink('127.0.0.1', port)
    try:
        sink.update(1.0, 2.0, 3.0, 20.0, 10.0, 30.0)
        data, _ = receiver.recvfrom(1024)
    finally:
        sink.close()
        receiver.close()

    assert struct.unpack('<6d', data) == (100.0, 200.0, 300.0, 30.0, 20.0, 10.0)


def test_udp_sink_close_is_idempotent():
    sink = OpenTrackUdpSink('127.0.0.1', 4242)
    sink.close()
    sink.close()

    # Updates after close are ignored
    sink.update(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)


def test_console_sink_prints(capsys):
    ConsolePoseSink().update(1.0, 2.0, 3.0, 20.0, 10.0, 30.0)

    assert "pitch = 20.0, roll = 10.0, yaw = 30.0" in capsys.readouterr().out


def test_create_sink():
    assert isinstance(create_sink({'type': 'console'}), ConsolePoseSink)

    sink = create_sink({'type': 'udp', 'host': '127.0.0.1', 'port': 5555})
    assert sink.describe() == "opentrack UDP 127.0.0.1:5555"
    sink.close()

    with pytest.raises(ValueError):
        create_sink({'type': 'joystick'})
