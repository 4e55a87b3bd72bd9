"""LLM Configuration for CardioCheck.

This module handles Gemini model initialization for structured answer extraction.
"""
import logging
import google.generativeai as genai
from config.settings import GOOGLE_API_KEY, GEMINI_MODEL_NAME

logger = logging.getLogger(__name__)

def get_gemini_model(model_name: str = GEMINI_MODEL_NAME):
    """
    Configures and returns a Gemini model instance.
    
    Args:
        model_name: Gemini model to use (default from GEMINI_MODEL_NAME)
    
    Returns:
        GenerativeModel instance or None if API key is missing.
    """
    if not GOOGLE_API_KEY:
        logger.warning("GOOGLE_API_KEY not set. AI extraction disabled, using rule-based parsing.")
        return None

    genai.configure(api_key=GOOGLE_API_KEY)

    # Extraction is a low-temperature, short-answer task
    generation_config = {
        "temperature": 0.1,
        "max_output_tokens": 100,
        "response_mime_type": "application/json",
    }

    model = genai.GenerativeModel(
        model_name=model_name,
        generation_config=generation_config,
    )
    return model
