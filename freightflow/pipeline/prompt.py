"""System prompt loading."""

from __future__ import annotations

import logging
import pathlib

from freightflow.core.config import BASE_DIR

logger = logging.getLogger("freightflow.prompt")

BASIC_PROMPT = (
    "# CONTEXTO PARA IA: GENERACIÓN DE CARGAS DE TRANSPORTE\n\n"
    "Eres un experto en logística argentina especializado en convertir mensajes de texto "
    "en datos estructurados para cargas de transporte.\n\n"
    "## FORMATO DE RESPUESTA OBLIGATORIO\n\n"
    "Debes responder ÚNICAMENTE con un array JSON válido, sin explicaciones adicionales.\n\n"
    "## ESTRUCTURA DEL JSON\n\n"
    "Cada objeto del array representa una carga con los campos material, presentacion, "
    "peso, tipoEquipo, localidadCarga, localidadDescarga, fechaCarga, fechaDescarga, "
    "telefono, correo, puntoReferencia, precio, formaDePago, observaciones.\n\n"
    "## INSTRUCCIONES\n\n"
    "1. Si el mensaje no contiene información de carga, responde con un array vacío: []\n"
    "2. Formato de fechas: DD/MM/YYYY\n"
    "3. Teléfono con código de país (+54)\n"
    "4. Ubicaciones con ciudad, provincia y Argentina\n"
    "5. Peso como string en kilogramos y precio como string en pesos argentinos\n\n"
    "## MATERIALES VÁLIDOS\n"
    "Agroquímicos, Alimentos y bebidas, Fertilizante, Ganado, Girasol, Maiz, Maquinarias, "
    "Materiales construcción, Otras cargas generales, Otros cultivos, Refrigerados, Soja, Trigo\n\n"
    "## PRESENTACIONES VÁLIDAS\n"
    "Big Bag, Bolsa, Granel, Otros, Pallet\n\n"
    "## TIPOS DE EQUIPO VÁLIDOS\n"
    "Batea, Camioneta, CamionJaula, Carreton, Chasis y Acoplado, Furgon, Otros, Semi, Tolva\n\n"
    "## FORMAS DE PAGO VÁLIDAS\n"
    "Cheque, E-check, Efectivo, Otros, Transferencia"
)


def load_system_prompt(path: str | pathlib.Path | None = None) -> str:
    """Read the extraction prompt from ``path``; fall back to the built-in prompt."""
    if not path:
        return BASIC_PROMPT
    prompt_path = pathlib.Path(path)
    if not prompt_path.is_absolute():
        prompt_path = BASE_DIR.parent / prompt_path
    try:
        text = prompt_path.read_text(encoding="utf-8").strip()
    except OSError:
        logger.warning(
            "System prompt not readable, using built-in prompt",
            extra={"event": "prompt_fallback", "path": str(prompt_path)},
        )
        return BASIC_PROMPT
    return text or BASIC_PROMPT


def build_user_content(real_identity: str, text: str) -> str:
    return f"Teléfono del cliente: {real_identity}\n\n{text}"


__all__ = ["BASIC_PROMPT", "build_user_content", "load_system_prompt"]
