"""
UFree — Telegram Bot.

Telegram is the user interface: the owner sets their week, checks which
friends are free and nudges them from here. Every command goes through
the ports stored in bot_data; the bot never touches storage directly.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
)

from ufree.config import settings
from ufree.core.friends_schedule import NudgeError, Nudger, load_friend_schedules
from ufree.core.week import fill_week, parse_day, today
from ufree.data.models import AvailabilityStatus, DayAvailability, NotificationType
from ufree.ports.availability_port import AvailabilityError, PastDateError
from ufree.ports.friend_port import FriendError
from ufree.ports.notification_port import NotificationError

if TYPE_CHECKING:
    from datetime import date

    from ufree.adapters.factory import Ports
    from ufree.core.update_status import UpdateMyStatus
    from ufree.ports.availability_port import AvailabilityPort
    from ufree.ports.friend_port import FriendPort
    from ufree.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from unauthorized users."""

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Formatting and parsing helpers
# ---------------------------------------------------------------------------

_STATUS_ALIASES = {
    "busy": AvailabilityStatus.BUSY,
    "free": AvailabilityStatus.FREE,
    "morning": AvailabilityStatus.MORNING_ONLY,
    "afternoon": AvailabilityStatus.AFTERNOON_ONLY,
    "evening": AvailabilityStatus.EVENING_ONLY,
    "unknown": AvailabilityStatus.UNKNOWN,
    "none": AvailabilityStatus.UNKNOWN,
}

_STATUS_ICONS = {
    AvailabilityStatus.BUSY: "⛔",
    AvailabilityStatus.FREE: "✅",
    AvailabilityStatus.MORNING_ONLY: "🌅",
    AvailabilityStatus.AFTERNOON_ONLY: "☀️",
    AvailabilityStatus.EVENING_ONLY: "🌙",
    AvailabilityStatus.UNKNOWN: "❔",
}


def _parse_status(text: str) -> AvailabilityStatus | None:
    """Parse a status name like 'free', 'Morning' or 'evening-only'."""
    value = text.strip().lower().replace("_", "-")
    if value.endswith("-only"):
        value = value[: -len("-only")]
    return _STATUS_ALIASES.get(value)


def _format_day(day: DayAvailability) -> str:
    line = (
        f"{_STATUS_ICONS[day.status]} {day.date.strftime('%a %d %b')} — "
        f"{day.status.display_name}"
    )
    if day.note:
        line += f" ({day.note})"
    return line


def _format_week(days: list[DayAvailability]) -> str:
    return "\n".join(_format_day(d) for d in days)


async def _my_week(availability: AvailabilityPort) -> list[DayAvailability]:
    """My schedule as a gapless week starting today."""
    schedule = await availability.get_my_schedule()
    return fill_week(schedule.weekly_status, today())


def _parse_day_arg(args: list[str]) -> date | None:
    if not args:
        return today()
    return parse_day(args[0], today())


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *UFree*!\n\n"
        "Share when you're free this week and see which friends are too:\n"
        "• /week to see your next 7 days\n"
        "• /set <day> <status> to update a day\n"
        "• /schedules to see your friends' week\n"
        "• /nudgeall to nudge every friend who's free\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/week — Your next 7 days\n"
        "/set <day> <status> [note] — Set a day (busy, free, morning, afternoon, evening)\n"
        "/cycle <day> — Switch a day to the next status\n"
        "/friends — Your friends\n"
        "/schedules [day] — Friends' status for a day\n"
        "/nudge <friend_id> — Nudge one friend\n"
        "/nudgeall [day] — Nudge every friend who's free\n"
        "/addfriend <phone> — Send a friend request\n"
        "/requests — Incoming friend requests\n"
        "/inbox — Your notifications\n"
        "/help — Show this message",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_week(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /week — show my schedule (local-first, never waits on the network)."""
    availability: AvailabilityPort = context.bot_data["availability"]

    try:
        days = await _my_week(availability)
    except AvailabilityError as exc:
        logger.error("/week error: %s", exc)
        await update.message.reply_text("Couldn't load your schedule. Please try again.")
        return

    await update.message.reply_text("*Your week:*\n\n" + _format_week(days), parse_mode="Markdown")


async def _apply_status(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    day: DayAvailability,
) -> None:
    update_status: UpdateMyStatus = context.bot_data["update_status"]
    try:
        await update_status.execute(day)
    except PastDateError:
        await update.message.reply_text("You can't change a day that's already passed.")
        return
    except AvailabilityError as exc:
        logger.error("Status update failed for %s: %s", day.date, exc)
        await update.message.reply_text("Couldn't save that change. Please try again.")
        return

    await update.message.reply_text(f"Saved: {_format_day(day)}")


@authorized_only
async def cmd_set(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /set <day> <status> [note]."""
    availability: AvailabilityPort = context.bot_data["availability"]
    args = context.args or []
    if len(args) < 2:
        await update.message.reply_text(
            "Usage: /set <day> <status> [note]\n"
            "Example: /set friday evening dinner plans?"
        )
        return

    target = parse_day(args[0], today())
    if target is None:
        await update.message.reply_text(
            "I didn't understand that day. Try today, tomorrow, a weekday or YYYY-MM-DD."
        )
        return

    status = _parse_status(args[1])
    if status is None:
        await update.message.reply_text(
            "Unknown status. Use busy, free, morning, afternoon or evening."
        )
        return

    note = " ".join(args[2:]) or None

    try:
        schedule = await availability.get_my_schedule()
    except AvailabilityError as exc:
        logger.error("/set load error: %s", exc)
        await update.message.reply_text("Couldn't load your schedule. Please try again.")
        return

    # Keep the day's id stable if it already exists
    existing = schedule.status_for(target)
    day = DayAvailability(date=target, status=status, note=note)
    if existing is not None:
        day.id = existing.id

    await _apply_status(update, context, day)


@authorized_only
async def cmd_cycle(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cycle <day> — advance a day to its next status."""
    availability: AvailabilityPort = context.bot_data["availability"]

    target = _parse_day_arg(context.args or [])
    if target is None:
        await update.message.reply_text("Usage: /cycle <day>")
        return

    try:
        week = await _my_week(availability)
    except AvailabilityError as exc:
        logger.error("/cycle load error: %s", exc)
        await update.message.reply_text("Couldn't load your schedule. Please try again.")
        return

    current = next((d for d in week if d.date == target), None)
    if current is None:
        current = DayAvailability(date=target)

    day = DayAvailability(
        id=current.id, date=current.date, status=current.status.next(), note=current.note,
    )
    await _apply_status(update, context, day)


@authorized_only
async def cmd_friends(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /friends — list my friends."""
    friends: FriendPort = context.bot_data["friends"]

    try:
        profiles = await friends.get_my_friends()
    except FriendError as exc:
        logger.error("/friends error: %s", exc)
        await update.message.reply_text("Couldn't load your friends. Please try again.")
        return

    if not profiles:
        await update.message.reply_text("No friends yet. Use /addfriend <phone> to add one.")
        return

    lines = ["*Your friends:*\n"]
    for p in profiles:
        lines.append(f"• {p.display_name} (`{p.id}`)")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_schedules(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /schedules [day] — every friend's status for a day."""
    availability: AvailabilityPort = context.bot_data["availability"]
    friends: FriendPort = context.bot_data["friends"]

    target = _parse_day_arg(context.args or [])
    if target is None:
        await update.message.reply_text("Usage: /schedules [day]")
        return

    try:
        displays = await load_friend_schedules(await friends.get_my_friends(), availability)
    except (FriendError, AvailabilityError) as exc:
        logger.error("/schedules error: %s", exc)
        await update.message.reply_text("Couldn't load your friends' schedules. Please try again.")
        return

    if not displays:
        await update.message.reply_text("No friend schedules to show.")
        return

    lines = [f"*Friends on {target.strftime('%a %d %b')}:*\n"]
    for d in displays:
        status = d.status_for(target)
        lines.append(f"{_STATUS_ICONS[status]} {d.display_name} — {status.display_name}")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_nudge(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /nudge <friend_id>."""
    notifications: NotificationPort = context.bot_data["notifications"]
    args = context.args or []
    if not args:
        await update.message.reply_text("Usage: /nudge <friend_id>\nUse /friends to see IDs.")
        return

    try:
        await notifications.send_nudge(args[0])
    except NotificationError as exc:
        logger.error("/nudge error: %s", exc)
        await update.message.reply_text("Couldn't send the nudge. Please try again.")
        return
    await update.message.reply_text("👋 Nudge sent!")


@authorized_only
async def cmd_nudgeall(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /nudgeall [day] — nudge every friend who's free that day."""
    availability: AvailabilityPort = context.bot_data["availability"]
    friends: FriendPort = context.bot_data["friends"]
    nudger: Nudger = context.bot_data.setdefault(
        "nudger", Nudger(context.bot_data["notifications"]),
    )

    target = _parse_day_arg(context.args or [])
    if target is None:
        await update.message.reply_text("Usage: /nudgeall [day]")
        return

    try:
        displays = await load_friend_schedules(await friends.get_my_friends(), availability)
        result = await nudger.nudge_all_free(displays, target)
    except NudgeError as exc:
        logger.error("/nudgeall all nudges failed: %s", exc)
        await update.message.reply_text("Couldn't nudge anyone. Please try again.")
        return
    except (FriendError, AvailabilityError) as exc:
        logger.error("/nudgeall error: %s", exc)
        await update.message.reply_text("Couldn't load your friends' schedules. Please try again.")
        return

    if result is None:
        await update.message.reply_text("Already nudging, hang on…")
        return
    await update.message.reply_text(result.message())


@authorized_only
async def cmd_addfriend(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addfriend <phone> — find a user by phone and send a request."""
    friends: FriendPort = context.bot_data["friends"]
    args = context.args or []
    if not args:
        await update.message.reply_text("Usage: /addfriend <phone number>")
        return

    phone = " ".join(args)
    try:
        user = await friends.find_user_by_phone_number(phone)
        if user is None:
            await update.message.reply_text("No UFree user found with that number.")
            return
        await friends.send_friend_request(user)
    except FriendError as exc:
        logger.error("/addfriend error: %s", exc)
        await update.message.reply_text("Couldn't send the friend request. Please try again.")
        return

    await update.message.reply_text(f"Friend request sent to {user.display_name}.")


@authorized_only
async def cmd_requests(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /requests — incoming friend requests as accept/decline buttons."""
    friends: FriendPort = context.bot_data["friends"]

    try:
        requests = await friends.get_incoming_requests()
    except FriendError as exc:
        logger.error("/requests error: %s", exc)
        await update.message.reply_text("Couldn't load friend requests. Please try again.")
        return

    if not requests:
        await update.message.reply_text("No pending friend requests.")
        return

    for req in requests:
        keyboard = [[
            InlineKeyboardButton("Accept", callback_data=f"req:accept:{req.id}"),
            InlineKeyboardButton("Decline", callback_data=f"req:decline:{req.id}"),
        ]]
        await update.message.reply_text(
            f"{req.from_name} wants to be friends.",
            reply_markup=InlineKeyboardMarkup(keyboard),
        )


async def _handle_request_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline Accept/Decline tap on a friend request."""
    friends: FriendPort = context.bot_data["friends"]

    query = update.callback_query
    await query.answer()

    # Verify the user is authorized
    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    _, action, request_id = query.data.split(":", 2)

    try:
        pending = await friends.get_incoming_requests()
        request = next((r for r in pending if r.id == request_id), None)
        if request is None:
            await query.edit_message_text("That request is no longer pending.")
            return

        if action == "accept":
            await friends.accept_friend_request(request)
            await query.edit_message_text(f"✅ You and {request.from_name} are now friends.")
        else:
            await friends.decline_friend_request(request)
            await query.edit_message_text(f"Declined {request.from_name}'s request.")
    except FriendError as exc:
        logger.error("friend request callback error: %s", exc)
        await query.edit_message_text("Something went wrong. Please try again.")


@authorized_only
async def cmd_inbox(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /inbox — recent notifications; unread ones are marked read."""
    notifications: NotificationPort = context.bot_data["notifications"]

    try:
        notes = await notifications.list_notifications(limit=10)
        lines = []
        for note in notes:
            marker = "•" if note.is_read else "🔔"
            verb = "nudged you" if note.type == NotificationType.NUDGE else "sent you a friend request"
            lines.append(f"{marker} {note.sender_name} {verb}")
            if not note.is_read:
                await notifications.mark_as_read(note)
    except NotificationError as exc:
        logger.error("/inbox error: %s", exc)
        await update.message.reply_text("Couldn't load notifications. Please try again.")
        return

    if not lines:
        await update.message.reply_text("No notifications.")
        return
    await update.message.reply_text("\n".join(lines))


# ---------------------------------------------------------------------------
# Application wiring
# ---------------------------------------------------------------------------


async def _wire_ports(app: Application) -> None:
    """post_init hook: sign in, build the ports and publish my profile."""
    from ufree.adapters.factory import create_ports
    from ufree.integrations.firebase_auth import (
        AuthError,
        get_session,
        save_session,
        update_display_name,
    )

    session = await get_session()
    if session.display_name != settings.DISPLAY_NAME:
        try:
            session = await update_display_name(session, settings.DISPLAY_NAME, settings.FIREBASE_API_KEY)
            save_session(session, Path(settings.FIREBASE_TOKEN_PATH))
        except AuthError as exc:
            logger.warning("Display name update failed, continuing: %s", exc)

    ports = create_ports(session.user_id)
    app.bot_data.update(ports.as_dict())

    try:
        await ports.friends.sync_my_profile(settings.DISPLAY_NAME, settings.PHONE_NUMBER)
    except FriendError as exc:
        logger.warning("Profile sync failed, continuing: %s", exc)

    logger.info("Ports wired for user %s", session.user_id)


async def _drain_syncs(app: Application) -> None:
    """post_shutdown hook: let in-flight background syncs finish."""
    availability = app.bot_data.get("availability")
    if availability is not None and hasattr(availability, "drain"):
        await availability.drain()


def build_app(ports: Ports | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        ports: Pre-built ports. When omitted, they are created after startup
               from the stored Firebase session.
    """
    builder = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).post_shutdown(_drain_syncs)
    if ports is None:
        builder = builder.post_init(_wire_ports)
    app = builder.build()

    if ports is not None:
        app.bot_data.update(ports.as_dict())

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("week", cmd_week))
    app.add_handler(CommandHandler("set", cmd_set))
    app.add_handler(CommandHandler("cycle", cmd_cycle))
    app.add_handler(CommandHandler("friends", cmd_friends))
    app.add_handler(CommandHandler("schedules", cmd_schedules))
    app.add_handler(CommandHandler("nudge", cmd_nudge))
    app.add_handler(CommandHandler("nudgeall", cmd_nudgeall))
    app.add_handler(CommandHandler("addfriend", cmd_addfriend))
    app.add_handler(CommandHandler("requests", cmd_requests))
    app.add_handler(CommandHandler("inbox", cmd_inbox))
    app.add_handler(CallbackQueryHandler(_handle_request_callback, pattern=r"^req:(accept|decline):"))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting UFree bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
