"""Bot control endpoints — channel status, start, stop."""

from fastapi import APIRouter, Depends

from survey_engine.channel import ChannelSession, ChannelStatus

from survey_server.dependencies import get_channel

router = APIRouter(prefix="/bot", tags=["bot"])


@router.get("/status")
async def get_status(channel: ChannelSession = Depends(get_channel)) -> ChannelStatus:
    return channel.get_status()


@router.post("/start")
async def start_bot(channel: ChannelSession = Depends(get_channel)) -> ChannelStatus:
    """Connect the channel.  A connection error is reported in the status."""
    return await channel.start()


@router.post("/stop")
async def stop_bot(channel: ChannelSession = Depends(get_channel)) -> ChannelStatus:
    return await channel.stop()
