"""
Tests for the demo wiring in `run_pole.py`.

The paho client is patched out; only the transport wiring is exercised.
"""

import asyncio
import threading
from unittest.mock import patch

import pytest

from run_pole import build_controller
from smartpole.config import AppConfig
from smartpole.domain.models import PoleState


class TestBuildController:
    def test_memory_transport_is_connected_immediately(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("POLE_TRANSPORT", raising=False)

        controller, memory = build_controller(AppConfig())

        assert controller.state is PoleState.CONNECTED
        assert memory is not None

    @pytest.mark.asyncio
    async def test_broker_connect_callback_is_applied_on_the_event_loop(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("POLE_TRANSPORT", "mqtt")

        with patch("adapters.mqtt.publisher.mqtt.Client"):
            controller, memory = build_controller(AppConfig())

        assert memory is None
        assert controller.state is PoleState.IDLE

        # paho delivers on_connect from its own network thread
        network_thread = threading.Thread(target=controller.publisher.on_connected)
        network_thread.start()
        network_thread.join()

        assert controller.state is PoleState.IDLE
        await asyncio.sleep(0)
        assert controller.state is PoleState.CONNECTED
