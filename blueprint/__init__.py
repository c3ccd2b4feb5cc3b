import asyncio
import sys

# The gemini CLI is driven through asyncio subprocesses, which need the
# ProactorEventLoop on Windows. This must be done as early as possible.
if sys.platform == 'win32':
    try:
        from asyncio import WindowsProactorEventLoopPolicy
        asyncio.set_event_loop_policy(WindowsProactorEventLoopPolicy())
    except ImportError:
        pass
