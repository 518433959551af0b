import argparse
import asyncio
import logging

import slotview.bridge
import slotview.config
import slotview.osc
import slotview.session


logger = logging.getLogger(__name__)


def _log_view (session: slotview.session.ViewSession) -> None:

	"""Log the foreground slot, its playhead, note count and background overlay count.

	Called after every snapshot and every foreground change.
	"""

	overlays = session.background_overlays()
	phase = session.displayed_phase
	shown = f"{phase:.3f}" if phase is not None else "-"

	logger.info(f"Slot {session.foreground} phase {shown}, {len(session.foreground_spans)} notes, {len(overlays)} background slots")


async def run (config: slotview.config.Config) -> None:

	"""
	Connect to the backend and keep the view session running until cancelled.
	"""

	session = slotview.session.ViewSession(frame_rate=config.frame_rate, stale_sync_seconds=config.stale_sync_seconds)
	session.events.on("snapshot", lambda version: _log_view(session))
	session.events.on("foreground", lambda index: _log_view(session))

	bridge = slotview.bridge.BridgeClient(session, config.bridge_url)
	receiver = slotview.osc.OscReceiver(session, receive_port=config.osc_port) if config.osc_port else None

	session.start()

	try:
		if receiver is not None:
			await receiver.start()

		await bridge.connect()

		while True:
			await asyncio.sleep(1)

	finally:
		session.close()
		await bridge.close()
		if receiver is not None:
			await receiver.stop()


def main () -> None:

	"""
	Main entry point for the slotview runner.
	"""

	parser = argparse.ArgumentParser(prog="slotview", description="Follow a multi-slot sequencer's transport.")
	parser.add_argument("--config", default="slotview.yaml", help="path to the YAML config file")
	args = parser.parse_args()

	config = slotview.config.load_config(args.config)

	logging.basicConfig(level=getattr(logging, config.log_level))
	logger.info("slotview starting...")

	try:
		asyncio.run(run(config))
	except KeyboardInterrupt:
		logger.info("Stopping...")
	except (OSError, slotview.bridge.BridgeError) as exc:
		logger.error(f"Bridge unavailable: {exc}")


if __name__ == "__main__":
	main()
