#!/usr/bin/env python3
"""
消息通道测试
"""

import asyncio
import os
import sys

import pytest

# 将 backend 目录添加到 sys.path 中，便于按项目方式导入
backend_path = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if backend_path not in sys.path:
    sys.path.insert(0, backend_path)

from app.core.messaging import DataCloneError, MessageChannel, structured_clone


def _run(coro):
    """兼容无 pytest-asyncio 的环境，直接运行协程。"""
    return asyncio.run(coro)


def test_ports_are_entangled():
    async def scenario():
        channel = MessageChannel()
        channel.port2.post_message({"success": True})
        channel.port1.post_message("ping")
        return await channel.port1.receive(timeout=1), await channel.port2.receive(timeout=1)

    assert _run(scenario()) == ({"success": True}, "ping")


def test_messages_are_copied():
    async def scenario():
        channel = MessageChannel()
        data = {"steps": [1, 2]}
        channel.port2.post_message(data)
        data["steps"].append(3)
        return await channel.port1.receive(timeout=1)

    assert _run(scenario()) == {"steps": [1, 2]}


def test_receive_times_out():
    async def scenario():
        channel = MessageChannel()
        await channel.port1.receive(timeout=0.01)

    with pytest.raises(asyncio.TimeoutError):
        _run(scenario())


def test_messages_to_closed_port_are_dropped():
    async def scenario():
        channel = MessageChannel()
        channel.port1.close()
        channel.port2.post_message("late reply")
        return channel.port1._queue.empty()

    assert _run(scenario()) is True


def test_structured_clone_rejects_unserializable_data():
    with pytest.raises(DataCloneError):
        structured_clone({"callback": object()})
