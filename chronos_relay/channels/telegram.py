"""Telegram channel adapter.

Maps Telegram photos and image documents to ``Attachment`` records and
hands them to the ingestion orchestrator. Each update is processed as its
own task (``concurrent_updates``), so images from different chats are
analysed concurrently while the attachments of one message stay ordered.
"""

import asyncio
import logging
import time
from typing import Optional

from telegram import Bot, BotCommand, Message, Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from ..communication.formatting import markdown_to_telegram_html
from ..ingestion.attachments import IMAGE_SOURCE_TAG, Attachment
from ..ingestion.orchestrator import InboundMessage, IngestionOrchestrator

logger = logging.getLogger("chronos_relay.telegram")

SOURCE_TAG = "telegram"
DOWNLOAD_COMMAND = "/download"

HELP_TEXT = (
    "🔬 Send me an image and I'll run it through the Chronos analysis pipeline.\n\n"
    "Photos and image files are both accepted; each image is analysed in turn "
    "and the questions and answers come back here.\n\n"
    f"Add the caption {DOWNLOAD_COMMAND} to only save the image without analysing it."
)


class _TypingIndicator:
    """Keeps sending 'typing' action every 4s until the block exits.

    Usage:
        async with _TypingIndicator(bot, chat_id):
            await long_running_work()

    Auto-stops after max_duration seconds even if the wrapped work hangs.
    """

    def __init__(self, bot: Bot, chat_id: int, interval: float = 4.0, max_duration: float = 900.0):
        self._bot = bot
        self._chat_id = chat_id
        self._interval = interval
        self._max_duration = max_duration
        self._task: Optional[asyncio.Task] = None

    async def _loop(self):
        start = time.monotonic()
        while time.monotonic() - start <= self._max_duration:
            try:
                await self._bot.send_chat_action(self._chat_id, "typing")
            except TelegramError as e:
                logger.debug(f"Typing indicator failed for chat {self._chat_id}: {e}")
            await asyncio.sleep(self._interval)
        logger.warning(f"Typing indicator timeout ({self._max_duration}s) for chat {self._chat_id}")

    async def __aenter__(self):
        self._task = asyncio.create_task(self._loop())
        return self

    async def __aexit__(self, *exc):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass


class TelegramChannel:
    """Telegram bot adapter for the Chronos relay."""

    def __init__(self, orchestrator: IngestionOrchestrator, bot_token: str):
        self.orchestrator = orchestrator
        self.bot_token = bot_token
        self.app: Optional[Application] = None

    async def start(self):
        """Start the Telegram bot."""
        self.app = (
            Application.builder()
            .token(self.bot_token)
            .concurrent_updates(True)
            .build()
        )

        self.app.add_handler(CommandHandler("start", self._cmd_help))
        self.app.add_handler(CommandHandler("help", self._cmd_help))
        self.app.add_handler(CommandHandler("download", self._cmd_download))

        # Photos and images sent as files
        self.app.add_handler(MessageHandler(
            filters.PHOTO | filters.Document.IMAGE,
            self._handle_image,
        ))

        self.app.add_error_handler(self._handle_error)

        logger.info("Starting Telegram bot...")
        await self.app.initialize()
        await self.app.start()
        await self.app.updater.start_polling(drop_pending_updates=True)

        await self.app.bot.set_my_commands([
            BotCommand("start", "Welcome message"),
            BotCommand("help", "How to use the bot"),
            BotCommand("download", "Save an image without analysing it"),
        ])
        logger.info("Telegram bot started.")

    async def stop(self):
        """Stop the Telegram bot."""
        if self.app:
            if self.app.updater and self.app.updater.running:
                await self.app.updater.stop()
            if self.app.running:
                await self.app.stop()
            await self.app.shutdown()
            logger.info("Telegram bot stopped.")

    # ── Inbound mapping ───────────────────────────────────────

    @staticmethod
    async def attachments_from_message(message: Message) -> list[Attachment]:
        """Resolve the images of a Telegram message into attachment records.

        Photos use the largest size. File URLs from ``get_file()`` carry the
        bot token, so they are only handed to the acquirer, never logged.
        """
        attachments: list[Attachment] = []

        if message.photo:
            photo = message.photo[-1]
            tg_file = await photo.get_file()
            attachments.append(Attachment(
                id=photo.file_unique_id,
                url=tg_file.file_path,
                source=IMAGE_SOURCE_TAG,
                content_type="image/jpeg",
            ))

        document = message.document
        if document is not None:
            tg_file = await document.get_file()
            attachments.append(Attachment(
                id=document.file_unique_id,
                url=tg_file.file_path,
                content_type=document.mime_type,
                name=document.file_name,
            ))

        return attachments

    async def _build_inbound(self, message: Message) -> InboundMessage:
        user = message.from_user
        return InboundMessage(
            id=f"{message.chat.id}:{message.message_id}",
            entity_id=str(user.id) if user else None,
            source=SOURCE_TAG,
            attachments=await self.attachments_from_message(message),
        )

    # ── Outbound ──────────────────────────────────────────────

    def _make_callback(self, bot: Bot, chat_id: int, reply_to: Optional[int]):
        """Delivery callback bound to one chat. Only the first message replies."""
        state = {"reply_to": reply_to}

        async def deliver(text: str, source: Optional[str] = None):
            reply_params = {"message_id": state["reply_to"]} if state["reply_to"] else None
            try:
                await bot.send_message(
                    chat_id=chat_id,
                    text=markdown_to_telegram_html(text),
                    parse_mode="HTML",
                    reply_parameters=reply_params,
                )
            except BadRequest as e:
                # HTML parse failed, send as plain text
                logger.debug(f"HTML send failed ({e}), retrying as plain text")
                await bot.send_message(chat_id=chat_id, text=text, reply_parameters=reply_params)
            state["reply_to"] = None

        return deliver

    # ── Handlers ──────────────────────────────────────────────

    async def _cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if update.message:
            await update.message.reply_text(HELP_TEXT)

    async def _cmd_download(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/download as a reply to an image saves that image."""
        message = update.message
        if not message:
            return
        target = message.reply_to_message
        if target is None or not (target.photo or target.document):
            await message.reply_text(
                f"Reply {DOWNLOAD_COMMAND} to an image, or send an image with the caption {DOWNLOAD_COMMAND}."
            )
            return
        await self._process(target, context, download_only=True)

    async def _handle_image(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.message
        if not message:
            return
        caption = (message.caption or "").strip()
        download_only = caption.split(maxsplit=1)[0].lower() == DOWNLOAD_COMMAND if caption else False
        await self._process(message, context, download_only=download_only)

    async def _process(self, message: Message, context: ContextTypes.DEFAULT_TYPE, download_only: bool):
        chat_id = message.chat.id
        user = message.from_user
        logger.info(
            f"[{message.chat.type}] {user.first_name if user else '?'} "
            f"({user.id if user else '?'}): [image] download_only={download_only}"
        )

        callback = self._make_callback(context.bot, chat_id, message.message_id)
        async with _TypingIndicator(context.bot, chat_id):
            try:
                inbound = await self._build_inbound(message)
                if download_only:
                    report = await self.orchestrator.download_only(inbound, callback)
                else:
                    report = await self.orchestrator.handle_message(inbound, callback)
                logger.info(
                    f"Chat {chat_id}: {report.succeeded}/{report.processed} image(s) handled"
                )
            except Exception as e:
                logger.error(f"Error handling image: {e}", exc_info=True)
                await message.reply_text("❌ An error occurred while processing the image.")

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.error(f"Telegram error: {context.error}", exc_info=context.error)
