from __future__ import annotations
from typing import Dict, List, Tuple

# (dimension, questions) in questionnaire order; answers are partitioned by these counts.
DIMENSIONS: Dict[str, List[Tuple[str, int]]] = {
    "personas": [
        ("Liderazgo", 5),
        ("Clima", 5),
        ("Retención", 5),
        ("Desempeño", 5),
        ("Adaptación", 5),
    ],
    "empresas": [
        ("Gobernanza", 4),
        ("Procesos", 4),
        ("Tecnología", 3),
        ("Finanzas", 4),
        ("Mercado", 3),
        ("Talento", 4),
        ("Escalabilidad", 3),
    ],
}

PRODUCT_LABELS: Dict[str, str] = {
    "personas": "Estabilidad Humana",
    "empresas": "Estabilidad Estructural",
}

FINDING_TEXT: Dict[str, Dict[str, str]] = {
    "personas": {
        "Liderazgo": "Fortalecimiento de capacidades directivas requerido",
        "Clima": "Ambiente laboral necesita intervención",
        "Retención": "Riesgo significativo de rotación de talento",
        "Desempeño": "Sistema de evaluación y desarrollo por mejorar",
        "Adaptación": "Resiliencia organizacional limitada",
    },
    "empresas": {
        "Gobernanza": "Estructura de gobierno necesita formalización",
        "Procesos": "Procesos operativos requieren optimización",
        "Tecnología": "Infraestructura tecnológica por modernizar",
        "Finanzas": "Control financiero necesita fortalecimiento",
        "Mercado": "Posicionamiento competitivo vulnerable",
        "Talento": "Gestión del capital humano por mejorar",
        "Escalabilidad": "Limitaciones para crecimiento sostenible",
    },
}
FINDING_FALLBACK = "Área de mejora identificada"

GENERAL_RECOMMENDATION: Dict[str, str] = {
    "CRÍTICO": "Intervención inmediata requerida. Contacta a tu consultor IEE para plan de acción urgente.",
    "ALERTA": "Acción correctiva necesaria en los próximos 30 días.",
    "ESTABLE": "Monitoreo continuo y mejoras incrementales recomendadas.",
    "EXCELENTE": "Mantener buenas prácticas y buscar optimizaciones.",
}

SPECIFIC_RECOMMENDATION: Dict[str, Dict[str, str]] = {
    "personas": {
        "Liderazgo": "Implementar programa de desarrollo de líderes",
        "Clima": "Realizar encuesta de clima y plan de mejora",
        "Retención": "Diseñar estrategia de retención de talento clave",
        "Desempeño": "Revisar sistema de evaluación y feedback",
        "Adaptación": "Establecer protocolos de gestión del cambio",
    },
    "empresas": {
        "Gobernanza": "Formalizar estructura de comités y gobierno",
        "Procesos": "Documentar y optimizar procesos críticos",
        "Tecnología": "Evaluar infraestructura y plan de digitalización",
        "Finanzas": "Implementar controles y reportes financieros",
        "Mercado": "Desarrollar estrategia de posicionamiento",
        "Talento": "Crear plan de desarrollo organizacional",
        "Escalabilidad": "Diseñar modelo de crecimiento escalable",
    },
}


def dimension_names(product: str) -> List[str]:
    return [name for name, _ in DIMENSIONS.get(product, [])]


def total_questions(product: str) -> int:
    return sum(n for _, n in DIMENSIONS.get(product, []))
