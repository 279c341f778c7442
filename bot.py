"""
Usage (local):
  export BOT_TOKEN="..."
  python bot.py
"""

import html
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from downloader import Fetcher
from links import LinkEntity, RawMessage, extract_urls, select_platform
from settings import RelayConfig, load_config

# -------------------------
# Logging
# -------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("reel-relay")
logging.getLogger("telegram").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

START_TEXT = "I'm alive. Send me an Instagram Reels or TikTok link 🎬"
HELP_TEXT = "Send a link to an Instagram Reel or a TikTok video and I'll download it and send the video back."
FAILURE_TEXT = (
    "Couldn't download this video 😕\n"
    "Make sure the link is public and valid. Videos from private profiles can't be downloaded."
)


# -------------------------
# Message helpers
# -------------------------
def raw_message_from_telegram(message) -> RawMessage:
    text = message.text or message.caption or ""
    entities = message.entities or message.caption_entities or ()
    return RawMessage(
        text=text,
        entities=tuple(
            LinkEntity(kind=str(entity.type), offset=entity.offset, length=entity.length, url=entity.url)
            for entity in entities
        ),
    )


def resolve_sender_name(user) -> str:
    if not user:
        return "unknown"
    if user.username:
        return f"@{user.username}"
    return user.full_name or str(user.id)


def build_video_caption(source_url: str, sender_name: str) -> str:
    safe_url = html.escape(source_url, quote=True)
    safe_sender_name = html.escape(sender_name)
    return f'<a href="{safe_url}">Original</a> sent by <b>{safe_sender_name}</b>'


async def safe_edit_status(status_msg, text: str) -> bool:
    if not status_msg:
        return False
    try:
        await status_msg.edit_text(text)
        return True
    except Exception as edit_err:
        logger.info("Could not edit status message: %s", edit_err)
        return False


async def safe_delete_message(message) -> bool:
    try:
        await message.delete()
        return True
    except Exception as delete_err:
        logger.info("Could not delete message: %s", delete_err)
        return False


# -------------------------
# Handlers
# -------------------------
async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message:
        await update.effective_message.reply_text(START_TEXT)


async def handle_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message:
        await update.effective_message.reply_text(HELP_TEXT)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    if not message:
        return

    raw = raw_message_from_telegram(message)
    match = select_platform(extract_urls(raw))
    if match is None:
        await message.reply_text(f"You wrote: {message.text or 'something else 😅'}")
        return

    logger.info(
        "Using URL: original=%s canonical=%s platform=%s",
        match.source_url,
        match.canonical_url,
        match.platform.name,
    )
    fetcher: Fetcher = context.bot_data["fetcher"]
    sender_name = resolve_sender_name(update.effective_user)

    try:
        status_msg = await message.reply_text(f"Found {match.platform.label}. Downloading… ⏬")
        async with fetcher.session(match.canonical_url) as result:
            with result.file_path.open("rb") as f:
                await message.reply_video(
                    video=f,
                    supports_streaming=True,
                    caption=build_video_caption(match.source_url, sender_name),
                    parse_mode=ParseMode.HTML,
                )
        await safe_edit_status(status_msg, "Done ✅")
        await safe_delete_message(message)
    except Exception as e:
        logger.exception("Download/send error for %s: %s", match.canonical_url, e)
        await message.reply_text(FAILURE_TEXT)


async def handle_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    update_id = getattr(update, "update_id", None)
    logger.error("Bot error for update %s", update_id, exc_info=context.error)


async def log_heartbeat(_: ContextTypes.DEFAULT_TYPE) -> None:
    logger.info("Bot is listening...")


# -------------------------
# Health check
# -------------------------
class HealthCheckHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:
        body = b"ok"
        self.send_response(200)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, _format: str, *_args) -> None:
        return


def start_health_server(port: int, host: str = "0.0.0.0") -> ThreadingHTTPServer:
    server = ThreadingHTTPServer((host, port), HealthCheckHandler)
    thread = threading.Thread(target=server.serve_forever, name="healthcheck", daemon=True)
    thread.start()
    logger.info("Healthcheck on :%s", server.server_address[1])
    return server


# -------------------------
# Main
# -------------------------
def build_application(config: RelayConfig, fetcher: Fetcher | None = None) -> Application:
    app = (
        Application.builder()
        .token(config.bot_token)
        .concurrent_updates(True)
        .connect_timeout(60)
        .read_timeout(300)
        .write_timeout(300)
        .pool_timeout(60)
        .build()
    )
    app.bot_data["fetcher"] = fetcher or Fetcher(config)

    app.add_handler(CommandHandler("start", handle_start))
    app.add_handler(CommandHandler("help", handle_help))
    app.add_handler(MessageHandler(filters.UpdateType.MESSAGE & ~filters.COMMAND, handle_message))
    app.add_error_handler(handle_error)

    app.job_queue.run_repeating(log_heartbeat, interval=config.heartbeat_interval_seconds, first=0)
    return app


def main() -> None:
    config = load_config()
    if not config.bot_token:
        raise RuntimeError("BOT_TOKEN is required.")

    app = build_application(config)
    health_server = start_health_server(config.health_port)
    try:
        logger.info("Bot started. Polling and waiting for updates...")
        app.run_polling(close_loop=False)
    finally:
        health_server.shutdown()
        health_server.server_close()
        logger.info("HTTP server closed")


if __name__ == "__main__":
    main()
