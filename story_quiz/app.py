from fastapi import FastAPI

from story_quiz.config import Settings
from story_quiz.retry import RetryPolicy
from story_quiz.routes import router
from story_quiz.services import LLMCandidateGenerator, LLMDistractorRepairer, QuizServices
from story_quiz.speech import DEFAULT_MAX_ENTRIES, SpeechCache


def default_services(settings: Settings) -> QuizServices:
    """Text services over the configured LLM backend. Audio and images stay off."""
    llm = settings.build_llm()
    return QuizServices(
        candidate_generator=LLMCandidateGenerator(
            llm, settings.max_history_turns, settings.max_history_chars,
        ),
        repairer=LLMDistractorRepairer(llm),
        retry=RetryPolicy(settings.retry_attempts, settings.retry_base_delay),
    )


def create_app(services: QuizServices | None = None, settings: Settings | None = None) -> FastAPI:
    if services is None:
        settings = settings or Settings.from_env()
        services = default_services(settings)
    cache_size = settings.speech_cache_size if settings else DEFAULT_MAX_ENTRIES

    app = FastAPI(title="Story Quiz")
    app.state.services = services
    app.state.speech_cache = SpeechCache(services.speech, cache_size) if services.speech else None
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (configured from the environment / .env)
app = create_app()
