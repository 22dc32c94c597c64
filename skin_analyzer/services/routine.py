from __future__ import annotations

from typing import Literal

from skin_analyzer.models import InterpretedProfile, Routine, RoutineStep
from skin_analyzer.services.response_interpreter import (
    RANGE_HYDRAMELON,
    RANGE_RETILIFT,
    RANGE_SEBOCYLIQUE,
    RANGE_VITALIGHT,
)

Phase = Literal["morning", "evening"]
StepField = Literal["role", "benefit", "tip"]

MORNING_TEMPLATE: tuple[RoutineStep, ...] = (
    RoutineStep(
        role="Nettoyant doux",
        benefit="Élimine le sébum et les impuretés accumulés pendant la nuit sans agresser la peau.",
        tip="Rince à l'eau tiède, jamais chaude.",
    ),
    RoutineStep(
        role="Sérum",
        benefit="Apporte des actifs concentrés qui ciblent les besoins de ta peau.",
        tip="Applique-le sur peau légèrement humide pour une meilleure pénétration.",
    ),
    RoutineStep(
        role="Crème hydratante",
        benefit="Hydrate et protège la barrière cutanée tout au long de la journée.",
        tip="Masse du centre du visage vers l'extérieur.",
    ),
    RoutineStep(
        role="Protection solaire",
        benefit="Protège des UV, première cause du vieillissement cutané et des taches.",
        tip="Renouvelle l'application toutes les 2 heures en cas d'exposition.",
    ),
)

EVENING_TEMPLATE: tuple[RoutineStep, ...] = (
    RoutineStep(
        role="Démaquillant",
        benefit="Dissout le maquillage, la crème solaire et la pollution de la journée.",
        tip="Même sans maquillage, ne saute pas cette étape si tu as mis de la protection solaire.",
    ),
    RoutineStep(
        role="Nettoyant",
        benefit="Nettoie la peau en profondeur pour préparer les soins du soir.",
        tip="Une minute de massage suffit.",
    ),
    RoutineStep(
        role="Sérum de nuit",
        benefit="Soutient la régénération naturelle de la peau pendant le sommeil.",
        tip="Quelques gouttes suffisent pour tout le visage.",
    ),
    RoutineStep(
        role="Crème de nuit",
        benefit="Nourrit et répare la peau pendant la nuit.",
        tip="Applique-la au moins 30 minutes avant de dormir.",
    ),
)

# range -> (phase, step index, field, replacement text)
_RANGE_OVERRIDES: dict[str, tuple[tuple[Phase, int, StepField, str], ...]] = {
    RANGE_SEBOCYLIQUE: (
        ("morning", 1, "benefit", "Régule la production de sébum et resserre les pores grâce à l'acide salicylique."),
        ("evening", 2, "benefit", "Purifie les pores pendant la nuit et prévient l'apparition des imperfections."),
    ),
    RANGE_RETILIFT: (
        ("morning", 1, "benefit", "Raffermit la peau et protège des signes de l'âge dès le matin."),
        ("evening", 2, "benefit", "Le rétinol stimule le renouvellement cellulaire et lisse les rides pendant la nuit."),
        ("evening", 3, "tip", "Évite de combiner avec d'autres actifs exfoliants le même soir."),
    ),
    RANGE_VITALIGHT: (
        ("morning", 1, "benefit", "La vitamine C illumine le teint et atténue les taches pigmentaires."),
        ("morning", 3, "tip", "Indispensable avec un soin éclat : les UV ravivent les taches."),
        ("evening", 2, "benefit", "Unifie le teint et ravive l'éclat pendant la nuit."),
    ),
    RANGE_HYDRAMELON: (
        ("morning", 2, "benefit", "Hydrate intensément et repulpe la peau pour toute la journée."),
        ("evening", 3, "benefit", "Restaure la barrière hydrolipidique et apaise les tiraillements pendant la nuit."),
    ),
}

_RANGE_EXTRA_EVENING_STEP: dict[str, RoutineStep] = {
    RANGE_SEBOCYLIQUE: RoutineStep(
        role="Soin ciblé imperfections",
        benefit="Assèche localement les boutons et limite les marques.",
        tip="À appliquer uniquement sur les imperfections, 2 à 3 soirs par semaine.",
    ),
    RANGE_RETILIFT: RoutineStep(
        role="Contour des yeux",
        benefit="Lisse les ridules et atténue les signes de fatigue du contour de l'œil.",
        tip="Tapote du bout de l'annulaire, sans frotter.",
    ),
}


def synthesize(profile: InterpretedProfile) -> Routine:
    morning = list(MORNING_TEMPLATE)
    evening = list(EVENING_TEMPLATE)
    phases: dict[Phase, list[RoutineStep]] = {"morning": morning, "evening": evening}

    range_name = profile.recommended_range
    for phase, index, field, text in _RANGE_OVERRIDES.get(range_name, ()):
        steps = phases[phase]
        steps[index] = steps[index].model_copy(update={field: text})

    extra = _RANGE_EXTRA_EVENING_STEP.get(range_name)
    if extra is not None:
        evening.append(extra)

    return Routine(morning=tuple(morning), evening=tuple(evening))
