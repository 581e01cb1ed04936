"""
Reminder Engine
Alarm delivery loop: polls for due doses and presents one alarm at a time
"""

import asyncio
import logging
from contextlib import suppress
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from config import Settings, settings as app_settings
from models import DoseStatus
from exceptions import DoseAlreadyResolvedError, NotFoundError, PersistenceError
from services.record_store import DoseRecordStore, DueDose, record_store
from services.patient_service import PatientService, patient_service
from tools.alarm_sound import AlarmSound, AssetSoundBackend, SoundSource, ToneGenerator
from actions.alarm_presenter import Alarm, AlarmPresenter, DecisionOutcome, WebAlarmPresenter


logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


class AlarmState(str, Enum):
    """Delivery loop states"""
    IDLE = "idle"
    ACTIVE = "active"


class AlarmDeliveryLoop:
    """
    Single-active-alarm state machine for one patient session.

    Every tick fetches pending doses scheduled within the due window
    (now - DUE_WINDOW_MINUTES .. now), oldest first. When idle, the earliest
    due dose becomes the active alarm and the rest wait in the queue. While
    an alarm is active polling only refreshes the queue. A taken or missed
    decision is written back, the alarm clears and the loop polls again at
    once. If the write fails the alarm stays active and is presented again
    on the next tick.
    """

    def __init__(
        self,
        subject_id: int,
        store: DoseRecordStore,
        presenter: AlarmPresenter,
        sound: AlarmSound,
        clock: Clock = datetime.now,
        settings: Optional[Settings] = None,
        patients: PatientService = patient_service
    ):
        settings = settings or app_settings
        self.subject_id = subject_id
        self.store = store
        self.presenter = presenter
        self.sound = sound
        self.clock = clock
        self.patients = patients
        self.poll_interval = settings.ALARM_POLL_INTERVAL_SECONDS
        self.due_window = timedelta(minutes=settings.DUE_WINDOW_MINUTES)

        self._state = AlarmState.IDLE
        self._active: Optional[Alarm] = None
        self._queue: List[DueDose] = []
        self._needs_presentation = False
        self._presentation_task: Optional[asyncio.Task] = None
        self._task: Optional[asyncio.Task] = None
        self._decision_lock = asyncio.Lock()

        self.last_error: Optional[str] = None
        self.last_polled_at: Optional[datetime] = None

    # ==================== STATE ====================

    @property
    def state(self) -> AlarmState:
        return self._state

    @property
    def active_alarm(self) -> Optional[Alarm]:
        return self._active

    @property
    def queue(self) -> List[DueDose]:
        return list(self._queue)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sound_banner_visible(self) -> bool:
        return self.sound.banner_visible

    def snapshot(self) -> Dict[str, Any]:
        """Current loop state for clients"""
        return {
            "subject_id": self.subject_id,
            "state": self._state.value,
            "running": self.is_running,
            "active_alarm": self._active.to_dict() if self._active else None,
            "queue": [
                {
                    "event_id": dose.id,
                    "medication_id": dose.medication_id,
                    "medication_name": dose.medication_name,
                    "dosage": dose.dosage,
                    "scheduled_time": dose.scheduled_time
                }
                for dose in self._queue
            ],
            "sound": {
                "opted_in": self.sound.opted_in,
                "enabled": self.sound.enabled,
                "playing": self.sound.is_playing,
                "source": self.sound.source.value if self.sound.source else None
            },
            "sound_banner_visible": self.sound.banner_visible,
            "last_error": self.last_error,
            "last_polled_at": self.last_polled_at
        }

    # ==================== POLLING ====================

    async def tick(self) -> AlarmState:
        """Poll the store once and advance the state machine"""
        now = self.clock()
        try:
            due = self.store.fetch_due_events(self.subject_id, now - self.due_window, now)
        except PersistenceError as e:
            self.last_error = str(e)
            logger.warning(f"Due dose poll failed for patient {self.subject_id}: {e}")
            return self._state

        self.last_polled_at = now

        if self._state is AlarmState.IDLE:
            if due:
                self._queue = due[1:]
                self._activate(due[0], now)
            else:
                self._queue = []
        else:
            # The presented alarm is never replaced by polling
            self._queue = [dose for dose in due if dose.id != self._active.event_id]
            if self._needs_presentation:
                self._present()

        return self._state

    def _activate(self, dose: DueDose, now: datetime) -> None:
        self._active = Alarm(dose=dose, activated_at=now)
        self._state = AlarmState.ACTIVE
        logger.info(
            f"Alarm active for patient {self.subject_id}: dose event {dose.id} "
            f"({dose.medication_name} {dose.dosage}) scheduled {dose.scheduled_time:%Y-%m-%d %H:%M}"
        )
        self.sound.start()
        self._present()

    def _present(self) -> None:
        if self._presentation_task is not None and not self._presentation_task.done():
            return
        alarm = self._active
        self._needs_presentation = False
        alarm.presentations += 1
        self._presentation_task = asyncio.create_task(self._run_presentation(alarm))

    async def _run_presentation(self, alarm: Alarm) -> None:
        try:
            outcome = await self.presenter.present(alarm)
        except Exception as e:
            logger.warning(f"Presenting dose event {alarm.event_id} failed: {e}")
            outcome = DecisionOutcome.ERROR

        # Decision arrives through record_decision
        if outcome is None or self._active is not alarm:
            return

        try:
            await self.record_decision(outcome, event_id=alarm.event_id)
        except PersistenceError as e:
            logger.debug(f"Decision for dose event {alarm.event_id} left for retry: {e}")

    # ==================== DECISIONS ====================

    async def record_decision(
        self,
        outcome: DecisionOutcome,
        event_id: Optional[int] = None
    ) -> AlarmState:
        """
        Apply the user's decision to the active alarm

        Args:
            outcome: taken, missed, or error (presentation failed)
            event_id: Optional guard that the decision targets the active alarm

        Returns:
            Loop state after the immediate re-poll

        Raises:
            NotFoundError: no active alarm, or event_id is not the active one
            PersistenceError: the outcome could not be saved; alarm stays active
        """
        outcome = DecisionOutcome(outcome)

        async with self._decision_lock:
            alarm = self._active
            if alarm is None:
                raise NotFoundError(f"No active alarm for patient {self.subject_id}")
            if event_id is not None and event_id != alarm.event_id:
                raise NotFoundError(f"Dose event {event_id} is not the active alarm")

            if outcome is DecisionOutcome.ERROR:
                alarm.last_error = "Alarm could not be presented"
                self._needs_presentation = True
                return self._state

            status = DoseStatus.TAKEN if outcome is DecisionOutcome.TAKEN else DoseStatus.MISSED
            taken_at = self.clock() if status is DoseStatus.TAKEN else None

            try:
                self.store.record_outcome(self.subject_id, alarm.event_id, status, taken_at)
            except (DoseAlreadyResolvedError, NotFoundError) as e:
                # Stored state wins over the local alarm
                logger.info(f"Clearing alarm for dose event {alarm.event_id}: {e}")
                self._clear()
            except PersistenceError as e:
                alarm.last_error = str(e)
                self.last_error = str(e)
                self._needs_presentation = True
                logger.warning(
                    f"Saving decision for dose event {alarm.event_id} failed, alarm stays active: {e}"
                )
                self._notify_error(alarm, str(e))
                raise
            else:
                self.last_error = None
                self._clear()

        return await self.tick()

    def _notify_error(self, alarm: Alarm, message: str) -> None:
        try:
            self.presenter.notify_error(alarm, message)
        except Exception as e:
            logger.warning(f"Presenter could not show error for dose event {alarm.event_id}: {e}")

    def _clear(self) -> None:
        self._active = None
        self._state = AlarmState.IDLE
        self._needs_presentation = False
        self.sound.stop()

        task = self._presentation_task
        self._presentation_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        try:
            self.presenter.on_cleared()
        except Exception as e:
            logger.warning(f"Presenter failed to clear alarm: {e}")

    # ==================== AUDIO ====================

    async def set_audio_enabled(self, enabled: bool) -> Optional[SoundSource]:
        """Persist the audio preference and apply it to the current alarm"""
        await self.patients.set_alarm_audio_enabled(self.subject_id, enabled)

        if enabled:
            self.sound.opt_in()
            if self._state is AlarmState.ACTIVE:
                self.sound.start()
        else:
            self.sound.set_enabled(False)

        return self.sound.source

    async def enable_audio(self) -> Optional[SoundSource]:
        """One-time opt-in captured from a user gesture"""
        return await self.set_audio_enabled(True)

    # ==================== LIFECYCLE ====================

    async def start(self) -> None:
        """Start polling in a background task"""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"alarm-loop-{self.subject_id}")
        logger.info(f"Alarm loop started for patient {self.subject_id}")

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception(f"Alarm loop tick failed for patient {self.subject_id}")
            await asyncio.sleep(self.poll_interval)

    async def stop(self) -> None:
        """Cancel polling and drop the active alarm"""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        if self._active is not None:
            self._clear()
        self._queue = []
        logger.info(f"Alarm loop stopped for patient {self.subject_id}")


def create_alarm_loop(
    subject_id: int,
    audio_opted_in: bool = False,
    store: DoseRecordStore = record_store,
    clock: Clock = datetime.now,
    settings: Optional[Settings] = None,
    patients: PatientService = patient_service
) -> AlarmDeliveryLoop:
    """Wire a delivery loop for an HTTP client session"""
    settings = settings or app_settings
    presenter = WebAlarmPresenter()
    sound = AlarmSound(
        primary=AssetSoundBackend(settings.ALARM_SOUND_PATH, presenter.play_sound),
        fallback=ToneGenerator(presenter.play_sound),
        opted_in=audio_opted_in
    )
    return AlarmDeliveryLoop(
        subject_id,
        store=store,
        presenter=presenter,
        sound=sound,
        clock=clock,
        settings=settings,
        patients=patients
    )


class AlarmSessionManager:
    """
    One delivery loop per logged-in patient.

    Ending a session (logout) cancels that patient's polling.
    """

    def __init__(
        self,
        loop_factory: Callable[..., AlarmDeliveryLoop] = create_alarm_loop,
        autostart: bool = True
    ):
        self.loop_factory = loop_factory
        self.autostart = autostart
        self._sessions: Dict[int, AlarmDeliveryLoop] = {}

    def get(self, subject_id: int) -> Optional[AlarmDeliveryLoop]:
        return self._sessions.get(subject_id)

    @property
    def active_subjects(self) -> List[int]:
        return list(self._sessions.keys())

    async def start_session(self, subject_id: int, audio_opted_in: bool = False) -> AlarmDeliveryLoop:
        """Return the patient's loop, creating and starting it if needed"""
        loop = self._sessions.get(subject_id)
        if loop is None:
            loop = self.loop_factory(subject_id, audio_opted_in=audio_opted_in)
            self._sessions[subject_id] = loop
            logger.info(f"Alarm session opened for patient {subject_id}")

        if self.autostart:
            await loop.start()
        return loop

    async def end_session(self, subject_id: int) -> bool:
        loop = self._sessions.pop(subject_id, None)
        if loop is None:
            return False
        await loop.stop()
        logger.info(f"Alarm session closed for patient {subject_id}")
        return True

    async def shutdown(self) -> None:
        """Stop every session loop"""
        for subject_id in list(self._sessions.keys()):
            await self.end_session(subject_id)


# Singleton instance
alarm_sessions = AlarmSessionManager()
