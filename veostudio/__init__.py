"""veostudio — idea-to-video generation worker (Gemini, Imagen, Veo)."""

__version__ = "0.1.0"
