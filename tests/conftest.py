"""
Shared fixtures for kernel bridge tests.

FakeKernel stands in for a real Jupyter kernel: it binds the IOPub (PUB) and
shell (ROUTER) ports from a connection descriptor and lets a test script the
kernel side of the conversation.
"""

import asyncio
import json
import sys
import time

import pytest
import zmq
import zmq.asyncio

from kernel_bridge import codec
from kernel_bridge.config import BridgeConfig
from kernel_bridge.events import status_event
from kernel_bridge.models.connection import ConnectionInfo
from kernel_bridge.models.message import DELIMITER


class FakeKernel:
    """Kernel-side sockets driven by the test."""

    def __init__(self, connection: ConnectionInfo, context: zmq.asyncio.Context):
        self.connection = connection
        self.iopub = context.socket(zmq.PUB)
        self.iopub.bind(connection.iopub_addr)
        self.shell = context.socket(zmq.ROUTER)
        self.shell.bind(connection.shell_addr)

    async def recv_request(self, timeout: float = 5.0):
        """Next shell request as (routing identities, decoded message)."""
        frames = await asyncio.wait_for(self.shell.recv_multipart(), timeout)
        pos = frames.index(DELIMITER)
        return frames[:pos], codec.decode(frames)

    async def reply(self, identities, request, msg_type, content):
        message = codec.encode(
            msg_type, "fake-kernel", content, self.connection.key,
            parent_header=request.header,
        )
        await self.shell.send_multipart(list(identities) + message.frames)

    async def publish(self, msg_type, content, parent_header=None):
        message = codec.encode(
            msg_type, "fake-kernel", content, self.connection.key,
            parent_header=parent_header,
        )
        await self.iopub.send_multipart([f"kernel.{msg_type}".encode()] + message.frames)

    async def sync_iopub(self, bus, session_id, timeout: float = 5.0):
        """
        Publish parentless status messages until the subscriber sees one.

        PUB drops everything sent before the SUB connection is established.
        """
        seen = asyncio.Event()
        unsubscribe = bus.subscribe(status_event(session_id), lambda payload: seen.set())
        try:
            deadline = asyncio.get_running_loop().time() + timeout
            while not seen.is_set():
                if asyncio.get_running_loop().time() > deadline:
                    raise AssertionError("IOPub subscriber never connected")
                await self.publish("status", {"execution_state": "starting"})
                try:
                    await asyncio.wait_for(seen.wait(), 0.05)
                except asyncio.TimeoutError:
                    pass
        finally:
            unsubscribe()

    def close(self):
        self.iopub.close(linger=0)
        self.shell.close(linger=0)


@pytest.fixture
def make_fake_kernel():
    """Factory for FakeKernel; sockets are closed after the test."""
    kernels = []

    def factory(connection, context):
        kernel = FakeKernel(connection, context)
        kernels.append(kernel)
        return kernel

    yield factory
    for kernel in kernels:
        kernel.close()


@pytest.fixture
def connection():
    return ConnectionInfo.generate()


@pytest.fixture
def connection_file(tmp_path, connection):
    return connection.persist(tmp_path, "test")


@pytest.fixture
def config(tmp_path):
    """Fast timings and a private runtime dir."""
    config = BridgeConfig()
    config.paths.runtime_dir = str(tmp_path / "runtime")
    config.timing.startup_grace_s = 0.3
    config.timing.settle_delay_s = 0.01
    config.timing.complete_timeout_s = 2.0
    config.timing.execute_reply_timeout_s = 5.0
    config.timing.kill_timeout_s = 5.0
    return config


SLEEPER = "import time; time.sleep(60)"


@pytest.fixture
def sleeper_spec(tmp_path):
    """A kernel directory whose kernel.json starts a long-lived dummy process."""
    spec_dir = tmp_path / "kernels" / "sleeper"
    spec_dir.mkdir(parents=True)
    (spec_dir / "kernel.json").write_text(
        '{"argv": %s, "display_name": "Sleeper", "language": "python"}'
        % json.dumps([sys.executable, "-c", SLEEPER, "{connection_file}"])
    )
    return spec_dir

@pytest.fixture
def loop_gap():
    """
    Run an awaitable next to a 10 ms ticker and return (result, longest gap).

    A gap far above the tick means something blocked the event loop.
    """
    async def measure(awaitable):
        gaps = []

        async def tick():
            last = time.monotonic()
            while True:
                await asyncio.sleep(0.01)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        ticker = asyncio.ensure_future(tick())
        try:
            result = await awaitable
        finally:
            ticker.cancel()
        return result, max(gaps, default=0.0)

    return measure
