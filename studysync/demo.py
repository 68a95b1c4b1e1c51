"""Fixed demo datasets used when no source is configured."""

from __future__ import annotations

from datetime import date, timedelta

from studysync.models import Event, Material

DEMO_SEMESTER_START = date(2026, 4, 20)
DEMO_WEEKS = 14

# (title, time_from, time_to, weekday Mon=0, subject, mandatory, location)
_TIMETABLE_SLOTS = [
    ("Anatomie Vorlesung", "08:15", "09:45", 0, "Anatomie", False, "Hörsaal 1"),
    ("Anatomie Praktikum", "14:00", "17:00", 1, "Anatomie", True, "Seziersaal"),
    ("Physiologie Vorlesung", "10:15", "11:45", 0, "Physiologie", False, "Hörsaal 2"),
    ("Physiologie Praktikum", "14:00", "16:00", 3, "Physiologie", True, "Physiologie-Labor"),
    ("Biochemie Vorlesung", "08:15", "09:45", 2, "Biochemie", False, "Hörsaal 3"),
    ("Biochemie Praktikum", "14:00", "17:00", 4, "Biochemie", True, "Biochemie-Labor"),
    ("Histologie Kurs", "10:15", "12:15", 2, "Histologie", True, "Mikroskopiersaal"),
    ("Biologie Vorlesung", "12:15", "13:45", 1, "Biologie", False, "Hörsaal 4"),
    ("Medizinische Psychologie", "08:15", "09:45", 4, "General", False, "Hörsaal 5"),
    ("SIMED Kursus", "14:00", "16:00", 2, "SIMED", True, "SIMED-Zentrum"),
    ("Chemie Vorlesung", "10:15", "11:45", 3, "Chemie", False, "Chemie-Hörsaal"),
    ("Physik Vorlesung", "12:15", "13:45", 4, "Physik", False, "Physik-Hörsaal"),
]

# (course, title, topics, week, platform)
_MATERIALS = [
    ("Anatomie", "Einführung & Grundbegriffe", ["Anatomische Lage", "Körperebenen", "Organsysteme", "Gewebstypen", "Nomina anatomica"], 1, "Demo"),
    ("Anatomie", "Bewegungsapparat", ["Skelett", "Muskulatur", "Gelenke", "Sehnen", "Bänder", "Knorpel"], 2, "Demo"),
    ("Anatomie", "Herz und Kreislauf", ["Herzanatomie", "Herzklappen", "Koronararterien", "Blutgefäße", "Lymphsystem"], 3, "Demo"),
    ("Physiologie", "Zellphysiologie", ["Membranpotential", "Ionenkanäle", "Aktionspotential", "Osmose", "Diffusion"], 1, "Demo"),
    ("Physiologie", "Herzphysiologie", ["Erregungsleitung", "EKG", "Herzfrequenz", "Schlagvolumen", "Herzzyklus"], 3, "Demo"),
    ("Physiologie", "Atemphysiologie", ["Lungenvolumina", "Gasaustausch", "Ventilation", "Perfusion", "Blutgase"], 4, "Demo"),
    ("Biochemie", "Aminosäuren & Proteine", ["Aminosäurestruktur", "Peptidbindung", "Proteinstruktur", "Enzyme", "Km-Wert"], 1, "Demo"),
    ("Biochemie", "Kohlenhydratstoffwechsel", ["Glykolyse", "Citratcyclus", "Gluconeogenese", "Glykogensynthese", "Pentosephosphatweg"], 2, "Demo"),
    ("Biochemie", "Lipidstoffwechsel", ["Fettsäuresynthese", "β-Oxidation", "Cholesterin", "Lipoproteine", "Ketonkörper"], 3, "Demo"),
    ("Histologie", "Grundgewebe", ["Epithelgewebe", "Bindegewebe", "Muskelgewebe", "Nervengewebe", "Zellorganellen"], 1, "Demo"),
    ("Histologie", "Mikroskopie", ["Hämatoxylin/Eosin", "PAS-Färbung", "Immunhistochemie", "Lichtmikroskop", "Elektronenmikroskop"], 2, "Demo"),
    ("Biologie", "Zellbiologie", ["Zellzyklus", "Mitose", "Meiose", "DNA-Replikation", "Transkription", "Translation"], 1, "Demo"),
    ("Biologie", "Genetik", ["Mendel-Gesetze", "Mutation", "Chromosomen", "Genregulation", "Epigenetik"], 2, "Demo"),
    ("Chemie", "Organische Chemie", ["Funktionelle Gruppen", "Reaktionsmechanismen", "Säure-Base", "Redoxreaktionen", "Puffer"], 1, "Demo"),
    ("SIMED", "Klinische Untersuchung", ["Anamnese", "Inspektion", "Palpation", "Perkussion", "Auskultation"], 2, "SIMED"),
]


def demo_timetable() -> list[Event]:
    """Twelve weekly slots repeated over the 14 weeks of the demo semester."""
    events: list[Event] = []
    for week in range(DEMO_WEEKS):
        for title, time_from, time_to, weekday, subject, mandatory, location in _TIMETABLE_SLOTS:
            day = DEMO_SEMESTER_START + timedelta(days=week * 7 + weekday)
            events.append(
                Event(
                    title=title,
                    date=day.isoformat(),
                    time_from=time_from,
                    time_to=time_to,
                    location=location,
                    lecturer="Demo-Dozent",
                    subject=subject,
                    mandatory=mandatory,
                    platform="Demo",
                )
            )
    return events


def demo_materials() -> list[Material]:
    return [
        Material(
            course_title=course,
            title=title,
            topics=list(topics),
            week=week,
            date=(DEMO_SEMESTER_START + timedelta(days=(week - 1) * 7)).isoformat(),
            text=f"Demo entry for {course}: {title}",
            platform=platform,
        )
        for course, title, topics, week, platform in _MATERIALS
    ]
