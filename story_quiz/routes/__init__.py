"""FastAPI API endpoints under /api.

  GET  /health   liveness
  POST /quiz     question text + story context -> three options
  POST /turn     recorded question (base64 audio) + story context -> three options
  POST /tts      option text -> synthesised speech (LRU-cached per app)
"""

from fastapi import APIRouter

from .quiz import router as quiz_router

router = APIRouter()
router.include_router(quiz_router)
