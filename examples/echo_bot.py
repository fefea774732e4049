"""Echo bot for a SpeechBubble server.

Logs in, joins the given channels, prints every chat message and answers
"ping" with "pong".

    pip install speechbot

    python examples/echo_bot.py --host localhost --username bot --password secret
    python examples/echo_bot.py --host chat.example.com --port 443 --ssl --channels lobby,dev
"""

import argparse
import asyncio
import logging
import signal

from speechbot import connect


async def main(args: argparse.Namespace) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    channels = [c.strip() for c in args.channels.split(",") if c.strip()]
    async with connect(
        host=args.host,
        port=args.port,
        secure=args.ssl,
        username=args.username,
        password=args.password,
        channels=channels,
    ) as bot:

        @bot.on("login")
        def logged_in(event):
            print(f"Logged in as {bot.username}, joining {channels}")

        @bot.on("said")
        async def echo(event):
            chat = event.chat
            print(f"[{chat.channel_id}] <{chat.nickname or chat.username}> {chat.text}")
            if chat.username != bot.username and chat.text.lower() == "ping":
                await bot.say(chat.channel_id, "pong")

        @bot.on("error")
        def report(event):
            print(f"Error: {event.error}")

        print("Listening for messages... (Ctrl+C to stop)\n")
        await stop.wait()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="SpeechBubble echo bot")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=4480)
    parser.add_argument("--ssl", action="store_true")
    parser.add_argument("--username", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--channels", default="lobby", help="Comma-separated channels")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    asyncio.run(main(args))
