# bot/handlers.py
import logging
import time

from telegram import Update
from telegram.ext import ContextTypes

logger = logging.getLogger(__name__)

# --- Command Handlers ---

async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Displays a help message with all available commands."""
    help_text = """
    <b>Flash-Loan Arbitrage Bot</b>

    Monitors DEX prices for two-leg arbitrage and executes profitable routes through a flash loan.

    <b><u>Available Commands:</u></b>
    /status - Get bot status and last scan info
    /scaninfo - See monitored pairs and thresholds
    /executions - Show the most recent execution results
    /help - Show this help message
    """
    await update.message.reply_html(help_text)

async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Checks and reports the bot's operational status and scanner state."""
    bot_data = context.application.bot_data
    config = bot_data.get('config')
    scanner_task = bot_data.get('scanner_task')
    start_time = bot_data.get('start_time', 0)

    uptime_seconds = time.time() - start_time
    uptime_str = time.strftime('%H:%M:%S', time.gmtime(uptime_seconds))

    if scanner_task and not scanner_task.done():
        scanner_status = "✅ Running"
    elif scanner_task and scanner_task.done():
        exception = None if scanner_task.cancelled() else scanner_task.exception()
        scanner_status = "❌ Stopped with error" if exception else "⏹️ Stopped"
    else:
        scanner_status = "⚠️ Not running"

    mode = "Executing" if config and config.auto_trade else "Report only"
    status_text = (
        f"<b>🤖 Bot Status</b>\n"
        f"Uptime: <code>{uptime_str}</code>\n\n"
        f"<b>🔍 Scanner</b>\n"
        f"Status: {scanner_status}\n"
        f"Mode: {mode}\n"
        f"Last Scan: <code>{bot_data.get('last_scan_time', 'Never')}</code>\n"
        f"Last Block: <code>{bot_data.get('last_block', 'N/A')}</code>\n"
        f"Found Last Scan: <code>{bot_data.get('found_last_scan', 'N/A')}</code>\n"
    )
    last_error = bot_data.get('last_error')
    if last_error:
        status_text += f"Last Error: <pre>{last_error}</pre>\n"

    await update.message.reply_html(status_text)

async def scaninfo_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Displays the monitored pairs, DEXes and execution thresholds."""
    config = context.application.bot_data.get('config')

    if not config:
        await update.message.reply_text("Scanner configuration not found.")
        return

    pairs = ", ".join(pair.name for pair in config.pairs)
    dexes = ", ".join(dex.name for dex in config.dexes)

    message = (
        f"<b>🔍 Current Scanner Configuration</b>\n\n"
        f"<b>Pairs:</b> <code>{pairs}</code>\n"
        f"<b>DEXes:</b> <code>{dexes}</code>\n"
        f"<b>Trade Size:</b> <code>{config.trade_amount}</code> base tokens\n"
        f"<b>Min Profit:</b> <code>{config.min_profit_bps} bps</code>\n"
        f"<b>Slippage:</b> <code>{config.slippage}%</code>\n"
        f"<b>Interval:</b> <code>{config.interval}s</code> (backoff {config.error_backoff}s)"
    )

    await update.message.reply_html(message)

async def executions_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Shows the latest execution results from the repository."""
    repository = context.application.bot_data.get('repository')
    if not repository:
        await update.message.reply_text("Execution history is not available.")
        return

    try:
        records = await repository.fetch_recent_executions(limit=5)
    except Exception as e:
        logger.error(f"Error in /executions command: {e}")
        await update.message.reply_text("An error occurred while loading execution history.")
        return

    if not records:
        await update.message.reply_text("No executions recorded yet.")
        return

    lines = ["<b>📒 Recent Executions</b>\n"]
    for record in records:
        lines.append(
            f"{record.recorded_at:%Y-%m-%d %H:%M:%S} <b>{record.pair}</b> {record.outcome}\n"
            f"   {record.route} | {record.profit_bps} bps"
        )
    await update.message.reply_html("\n".join(lines))
