from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .sounds import AlarmSoundPlayer, LocalSpeaker
from .storage import Alarm

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    title: str
    body: str
    tag: str
    alarm_id: int


NotificationListener = Callable[[Notification], None]


def build_notification(alarm: Alarm) -> Notification:
    body = (alarm.description or "").strip() or f"Time for: {alarm.title}"
    return Notification(title=alarm.title, body=body, tag=f"alarm-{alarm.id}", alarm_id=alarm.id)


class NotificationGateway:
    """Shows a fired alarm to the user: listeners, speech and the looping sound."""

    def __init__(self, sound_player: AlarmSoundPlayer, speaker: Optional[LocalSpeaker] = None):
        self.sound_player = sound_player
        self.speaker = speaker
        self._listeners: List[NotificationListener] = []

    def subscribe(self, listener: NotificationListener) -> None:
        self._listeners.append(listener)

    def notify(self, alarm: Alarm) -> Notification:
        notification = build_notification(alarm)
        logger.info("Notification [%s] %s: %s", notification.tag, notification.title, notification.body)

        if self.speaker and self.speaker.available:
            self.speaker.speak_async(f"{notification.title}. {notification.body}")
        if alarm.sound_enabled:
            self.sound_player.start_loop()

        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.error("Notification listener failed for %s", notification.tag, exc_info=True)
        return notification

    def set_volume(self, volume: float) -> float:
        self.sound_player.set_volume(volume)
        logger.info("Alarm volume set to %.2f", self.sound_player.volume)
        return self.sound_player.volume

    def silence(self) -> None:
        self.sound_player.stop_loop()
