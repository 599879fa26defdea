"""
HTTP Server for talk2ai

This module provides a thin communication layer between the frontend and the
hosted providers. It handles request validation and response framing only;
streaming translation lives in StreamingHandler.
"""

import logging
from typing import Any

import uvicorn
from fastapi import FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from talk2ai.chat.models import ChatRequest, ErrorEvent, ErrorResponse, TranscriptionResponse
from talk2ai.chat.sse import (
    TEXT_STREAM_MEDIA_TYPE,
    UI_MESSAGE_STREAM_HEADERS,
    UI_MESSAGE_STREAM_MEDIA_TYPE,
)
from talk2ai.chat.streaming_handler import StreamingHandler
from talk2ai.clients import LLMClient, TranscriptionClient, UpstreamError, UpstreamHTTPError
from talk2ai.clients.errors import HTTP_TOO_MANY_REQUESTS
from talk2ai.config import Configuration

logger = logging.getLogger(__name__)

HTTP_BAD_REQUEST = 400
HTTP_INTERNAL_ERROR = 500


class ChatServer:
    """
    Pure HTTP communication server.

    This class only handles:
    - Chat requests (streamed responses)
    - Transcription requests
    - Health checks
    """

    def __init__(
        self,
        configuration: Configuration,
        llm_client: LLMClient | None = None,
        transcription_client: TranscriptionClient | None = None,
    ):
        self.configuration = configuration
        self.llm_client = llm_client or LLMClient(configuration)
        self.transcription_client = transcription_client or TranscriptionClient(configuration)
        self.streaming_handler = StreamingHandler(self.llm_client)
        self.stream_protocol = configuration.get_stream_protocol()
        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create and configure FastAPI app."""
        app = FastAPI(title="talk2ai Voice Chat Server")

        server_config = self.configuration.get_server_config()
        app.add_middleware(
            CORSMiddleware,
            allow_origins=server_config.get("cors_origins", ["*"]),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @app.get("/")
        async def root():  # type: ignore
            return {"message": "talk2ai Voice Chat Server"}

        @app.get("/health")
        async def health():  # type: ignore
            return {"status": "healthy"}

        @app.post("/api/chat")
        async def chat(request: ChatRequest):  # type: ignore
            return await self._handle_chat(request)

        @app.post("/api/whisper")
        async def whisper(  # type: ignore
            audio: UploadFile | None = File(default=None),
            model: str | None = Form(default=None),
            language: str | None = Form(default=None),
        ):
            return await self._handle_transcription(audio, model, language)

        return app

    async def _handle_chat(self, request: ChatRequest) -> StreamingResponse | JSONResponse:
        """Start the streamed response for a chat request."""
        logger.info(
            "Received chat request: model=%s, messages=%d, web_search=%s",
            request.model,
            len(request.messages),
            request.enable_web_search,
        )

        if self.stream_protocol == "text":
            body = await self.streaming_handler.open_text_stream(request)
            if isinstance(body, ErrorEvent):
                # failures before the first delta become the response status
                status = HTTP_TOO_MANY_REQUESTS if UpstreamError(body.error).is_rate_limited else HTTP_INTERNAL_ERROR
                return self._error_response(body.error, status)
            return StreamingResponse(body, media_type=TEXT_STREAM_MEDIA_TYPE)

        return StreamingResponse(
            self.streaming_handler.stream_ui_messages(request),
            media_type=UI_MESSAGE_STREAM_MEDIA_TYPE,
            headers=UI_MESSAGE_STREAM_HEADERS,
        )

    async def _handle_transcription(
        self,
        audio: UploadFile | None,
        model: str | None,
        language: str | None,
    ) -> JSONResponse:
        """Forward an uploaded clip to the transcription provider."""
        if audio is None:
            return self._error_response("No audio file provided", HTTP_BAD_REQUEST)

        try:
            audio_bytes = await audio.read()
            text = await self.transcription_client.transcribe(
                audio_bytes,
                filename=audio.filename or "recording.webm",
                content_type=audio.content_type or "audio/webm",
                model=model or None,
                language=language or None,
            )
        except UpstreamHTTPError as e:
            logger.error(f"Transcription failed upstream: {e}")
            return self._error_response("Transcription failed", HTTP_INTERNAL_ERROR)
        except UpstreamError as e:
            logger.error(f"Whisper API error: {e}")
            return self._error_response("Internal server error", HTTP_INTERNAL_ERROR)
        except Exception as e:
            logger.exception(f"Unexpected transcription error: {e}")
            return self._error_response("Internal server error", HTTP_INTERNAL_ERROR)

        return JSONResponse(TranscriptionResponse(text=text).model_dump())

    @staticmethod
    def _error_response(message: str, status_code: int) -> JSONResponse:
        return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=status_code)

    async def cleanup(self) -> None:
        """Close provider clients."""
        for client in (self.llm_client, self.transcription_client):
            try:
                await client.close()
            except Exception as e:
                logger.error(f"Error closing {type(client).__name__}: {e}")

    async def start_server(self) -> None:
        """Start the HTTP server with cleanup on exit."""
        server_config: dict[str, Any] = self.configuration.get_server_config()
        host = server_config.get("host", "localhost")
        port = server_config.get("port", 3000)

        logger.info(f"Starting talk2ai server on {host}:{port}")

        config = uvicorn.Config(self.app, host=host, port=port, log_level="info")
        server = uvicorn.Server(config)

        try:
            await server.serve()
        except KeyboardInterrupt:
            logger.info("Received shutdown signal, cleaning up...")
        except Exception as e:
            logger.error(f"Server error: {e}")
            raise
        finally:
            logger.info("Shutting down server and cleaning up resources...")
            await self.cleanup()


async def run_server(configuration: Configuration) -> None:
    """Run the HTTP server."""
    server = ChatServer(configuration)
    await server.start_server()
