"""Лист ожидания: заявки и уведомления об освободившемся времени

Уведомление не резервирует слот: освободившееся время остается
доступным любому клиенту по принципу "кто первый записался".
"""

import logging
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import BOOKING_LOCK_TIMEOUT, WAITLIST_EXPIRY_INTERVAL_MINUTES
from database.models import Caller, WaitlistEntry, WaitlistStatus
from database.repositories import (
    AuditRepository,
    BarberRepository,
    ServiceRepository,
    WaitlistRepository,
)
from services.booking_service import BookingService
from services.exceptions import AlreadyWaiting, NotFound, Unauthorized
from services.notification_service import NotificationService
from services.slot_grid import SlotGrid
from utils.helpers import format_date, now_local
from utils.i18n import t
from utils.locks import KeyedLock


class WaitlistService:
    """Заявки клиентов и сопоставление с освободившимися слотами"""

    def __init__(
        self,
        notification_service: NotificationService,
        grid: SlotGrid,
        locks: Optional[KeyedLock] = None,
    ):
        self.notification_service = notification_service
        self.grid = grid
        self.locks = locks or KeyedLock(BOOKING_LOCK_TIMEOUT)

    async def join(
        self,
        user_id: int,
        service_id: int,
        date_str: str,
        time_str: str,
        barber_id: Optional[int] = None,
    ) -> WaitlistEntry:
        """Встать в лист ожидания

        Raises:
            InvalidDate, OutOfHours, InvalidService, InvalidResource, AlreadyWaiting
        """
        date_str, time_str, start = self.grid.canonical_slot(date_str, time_str)
        self.grid.ensure_not_started(date_str, start)
        await BookingService.get_schedulable_service(service_id)
        if barber_id is not None:
            await BookingService.get_active_barber(barber_id)

        entry = WaitlistEntry(
            id=None,
            user_id=user_id,
            service_id=service_id,
            barber_id=barber_id,
            date=date_str,
            time=time_str,
        )
        entry.id = await WaitlistRepository.insert_entry(entry)
        if entry.id is None:
            raise AlreadyWaiting(
                f"User {user_id} already waits for {date_str} {time_str}",
                date=date_str,
                time=time_str,
            )

        logging.info(f"Waitlist entry {entry.id}: user {user_id} for {date_str} {time_str}")
        await AuditRepository.log_event(user_id, "waitlist_joined", f"{date_str} {time_str}")
        return entry

    async def leave(self, entry_id: int, caller: Caller) -> WaitlistEntry:
        """Выйти из листа ожидания (владелец заявки или админ)"""
        entry = await WaitlistRepository.get_by_id(entry_id)
        if entry is None:
            raise NotFound(f"Waitlist entry {entry_id} not found")
        if entry.user_id != caller.user_id and not caller.is_admin:
            raise Unauthorized(f"User {caller.user_id} cannot remove entry {entry_id}")

        if await WaitlistRepository.remove_entry(entry_id):
            entry.status = WaitlistStatus.REMOVED
            logging.info(f"Waitlist entry {entry_id} removed by {caller.user_id}")
        return entry

    async def get_user_entries(self, user_id: int) -> List[WaitlistEntry]:
        return await WaitlistRepository.get_user_entries(user_id)

    async def on_booked(self, user_id: int, service_id: int, date_str: str, time_str: str):
        """Клиент записался сам - его заявки на это время больше не нужны"""
        removed = await WaitlistRepository.remove_for_booking(user_id, service_id, date_str, time_str)
        if removed:
            logging.info(f"Removed {removed} waitlist entries of user {user_id} after booking")

    # === СОПОСТАВЛЕНИЕ ===

    async def on_slots_freed(
        self,
        date_str: str,
        time_str: str,
        span: int,
        barber_id: Optional[int],
        shop_wide: bool = False,
    ) -> List[WaitlistEntry]:
        """Уведомить подходящие заявки об освободившемся интервале

        Подходят активные заявки на ту же дату, чье время начала попадает
        в освободившийся интервал, с ограничением "любой барбер" или
        ровно этот барбер. barber_id=None (запись без барбера) - только
        заявки "любой барбер"; shop_wide=True (снята блокировка салона) -
        все заявки. Ошибка отправки одной заявки не мешает остальным.

        Returns:
            Заявки, переведенные в notified
        """
        times = [self.grid.time_of(i) for i in sorted(self.grid.expand(time_str, span))]
        if not times:
            return []

        entries = await WaitlistRepository.find_active_for_slots(
            date_str, times, barber_id, shop_wide
        )
        if not entries:
            logging.info(f"No one on the waiting list for {date_str} {time_str}")
            return []

        logging.info(f"Found {len(entries)} waitlist entries for {date_str} {time_str}")
        names = await self._load_names(entries)

        notified = []
        for entry in entries:
            try:
                if await self._notify_entry(entry, names):
                    notified.append(entry)
            except Exception:
                logging.exception(f"Error notifying waitlist entry {entry.id}")
        return notified

    async def _notify_entry(self, entry: WaitlistEntry, names: Dict[str, dict]) -> bool:
        """Отправить уведомление и перевести active -> notified ровно один раз"""
        async with self.locks.hold(("waitlist", entry.id)):
            fresh = await WaitlistRepository.get_by_id(entry.id)
            if fresh is None or fresh.status != WaitlistStatus.ACTIVE:
                return False

            text = t(
                "waitlist.slot_available",
                service=names["services"].get(entry.service_id, entry.service_id),
                date=format_date(entry.date),
                time=entry.time,
                barber=names["barbers"].get(entry.barber_id, t("waitlist.any_barber")),
            )
            if not await self.notification_service.send(entry.user_id, text):
                logging.warning(f"Waitlist entry {entry.id} not notified, dispatch failed")
                return False

            if not await WaitlistRepository.mark_notified(entry.id):
                return False

        entry.status = WaitlistStatus.NOTIFIED
        logging.info(f"Waitlist entry {entry.id} notified (user {entry.user_id})")
        await AuditRepository.log_event(
            entry.user_id, "waitlist_notified", f"{entry.date} {entry.time}"
        )
        return True

    @staticmethod
    async def _load_names(entries: List[WaitlistEntry]) -> Dict[str, dict]:
        services = await ServiceRepository.get_all_services(active_only=False)
        barbers = await BarberRepository.get_barbers(active_only=False)
        return {
            "services": {s.id: s.name for s in services},
            "barbers": {b.id: b.name for b in barbers},
        }

    # === ОБСЛУЖИВАНИЕ ===

    async def expire_stale_entries(self) -> int:
        """Просрочить заявки на уже наступившее время"""
        now = now_local()
        expired = await WaitlistRepository.expire_before(
            now.strftime("%Y-%m-%d"), now.strftime("%H:%M")
        )
        if expired:
            logging.info(f"Expired {expired} waitlist entries")
        return expired

    def schedule_expiry(self, scheduler: AsyncIOScheduler):
        """Периодическая задача просрочки заявок"""
        scheduler.add_job(
            self.expire_stale_entries,
            "interval",
            minutes=WAITLIST_EXPIRY_INTERVAL_MINUTES,
            id="waitlist_expiry",
            replace_existing=True,
        )
