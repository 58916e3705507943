import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from threading import Thread
from typing import List, Optional

from alarms.intent_router import IntentRouter, format_alarm_time
from alarms.manager import AlarmManager
from alarms.notifications import Notification, NotificationGateway
from alarms.sounds import AlarmSoundPlayer, LocalSpeaker
from alarms.storage import AlarmStore
from config import Config, load_config, setup_logging
from time_utils import format_tz_offset, resolve_timezone

logger = logging.getLogger("alarm_clock")

QUIT_WORDS = {"quit", "exit", "q"}
HELP_TEXT = (
    "Commands: list | stop | snooze [N min] | delete N | disable N | enable N | "
    "don't disturb for N minutes | dnd off | volume N | export [file] | import file | "
    "<alarm text, e.g. 'water at 9am every day'> | quit"
)


class AlarmClockApp:
    def __init__(self, config: Config, loop: asyncio.AbstractEventLoop):
        self.config = config
        self.loop = loop
        self.tzinfo = resolve_timezone(config.timezone_name)
        self.stop_event = asyncio.Event()

        speaker = LocalSpeaker() if config.enable_speech else None
        player = AlarmSoundPlayer(config.alarm_sound_path, volume=config.alarm_volume)
        self.gateway = NotificationGateway(player, speaker=speaker)
        self.gateway.subscribe(self._print_notification)
        self.manager = AlarmManager(
            store=AlarmStore(config.alarms_path, timezone=self.tzinfo),
            gateway=self.gateway,
            loop=loop,
            timezone=self.tzinfo,
            max_timer_delay=timedelta(hours=config.max_timer_hours),
            default_snooze_minutes=config.default_snooze_min,
            max_ahead=timedelta(days=config.max_ahead_days),
        )
        self.router = IntentRouter(self.manager, default_snooze_minutes=config.default_snooze_min)

    def start(self) -> None:
        logger.info("Timezone %s (UTC%s)", getattr(self.tzinfo, "key", self.tzinfo), format_tz_offset(self.tzinfo))
        self.manager.start()
        window = timedelta(hours=self.config.upcoming_window_hours)
        now = self.manager.now()
        for item in self.manager.upcoming_alarms(window):
            print(f"Upcoming: #{item.alarm.id} {item.alarm.title} {format_alarm_time(item.next_trigger, now)}")

    def shutdown(self) -> None:
        self.manager.shutdown()

    def handle_line(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        if text.lower() in QUIT_WORDS:
            self.stop_event.set()
            return
        if text.lower() in ("help", "?"):
            print(HELP_TEXT)
            return
        result = self.router.handle_text(text, now=self.manager.now())
        if result is None:
            print("Didn't understand that. " + HELP_TEXT)
        elif result.response_text:
            print(result.response_text)

    def start_console(self) -> Thread:
        thread = Thread(target=self._console_loop, name="console", daemon=True)
        thread.start()
        return thread

    def _console_loop(self) -> None:
        # stdin reads block, so they live off the loop thread; every command is
        # handed back to the loop.
        for line in sys.stdin:
            self.loop.call_soon_threadsafe(self.handle_line, line)
        self.loop.call_soon_threadsafe(self.stop_event.set)

    def _print_notification(self, notification: Notification) -> None:
        print(f"\a*** {notification.title}: {notification.body} (snooze / stop)")


async def run(config: Config, initial_text: Optional[str] = None, console: bool = True) -> None:
    app = AlarmClockApp(config, asyncio.get_running_loop())
    app.start()
    try:
        if initial_text:
            app.handle_line(initial_text)
        if console:
            print(HELP_TEXT)
            app.start_console()
        await app.stop_event.wait()
    finally:
        app.shutdown()
        logger.info("Alarm clock stopped")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Alarm clock with recurring alarms")
    parser.add_argument("text", nargs="*", help="alarm to add on startup, e.g. 'standup at 9:30 every day'")
    parser.add_argument("--no-console", action="store_true", help="do not read commands from stdin")
    args = parser.parse_args(argv)

    config = load_config()
    setup_logging(config.log_level)
    logger.info("Starting alarm clock (storage=%s)", config.alarms_path)
    try:
        asyncio.run(run(config, " ".join(args.text) or None, console=not args.no_console))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
