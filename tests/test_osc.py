import asyncio

import pytest
import pythonosc.udp_client

import slotview.osc
import slotview.session


@pytest.fixture
def session () -> slotview.session.ViewSession:

	"""A session with nothing loaded; transport state needs no slot contents."""

	return slotview.session.ViewSession()


@pytest.mark.asyncio
async def test_osc_activation_and_sync (session: slotview.session.ViewSession) -> None:

	"""/transport/on then /transport/sync should activate and place the slot."""

	receiver = slotview.osc.OscReceiver(session, receive_port=0)
	await receiver.start()

	client = pythonosc.udp_client.SimpleUDPClient("127.0.0.1", receiver.port)
	client.send_message("/transport/on", 0)
	await asyncio.sleep(0.1)

	assert session.transport.slots[0].active

	client.send_message("/transport/sync", [140.0, 0, 0.25, 3, 0.5])
	await asyncio.sleep(0.1)

	assert session.transport.bpm == pytest.approx(140.0)
	assert session.transport.slots[0].wrapped == pytest.approx(0.25)
	assert session.transport.slots[3].wrapped == pytest.approx(0.5)
	assert session.displayed_phase == pytest.approx(0.25)

	client.send_message("/transport/off", 0)
	await asyncio.sleep(0.1)

	assert not session.transport.slots[0].active
	assert session.displayed_phase is None

	await receiver.stop()


@pytest.mark.asyncio
async def test_osc_foreground_and_bad_slots (session: slotview.session.ViewSession) -> None:

	"""Out-of-range slots are ignored; /foreground switches the foreground slot."""

	receiver = slotview.osc.OscReceiver(session, receive_port=0)
	await receiver.start()

	client = pythonosc.udp_client.SimpleUDPClient("127.0.0.1", receiver.port)
	client.send_message("/transport/on", 42)
	client.send_message("/foreground", 99)
	client.send_message("/foreground", 5)
	await asyncio.sleep(0.1)

	assert session.transport.active_indices() == []
	assert session.foreground == 5

	await receiver.stop()
	assert receiver.port is None
