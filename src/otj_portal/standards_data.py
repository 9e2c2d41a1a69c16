"""Apprenticeship standard definitions.

Add new standards to the STANDARDS list. Each standard needs:
  - code:                     IfA standard reference (e.g. 'ST0763')
  - name:                     Full occupational title
  - level:                    Apprenticeship level integer
  - description:              Short description returned by /standards
  - minimum_weekly_otj_hours: Off-the-job hours a learner must log each week
  - available:                True if learners can select it
"""

from otj_portal.errors import InvalidInput

STANDARDS = [
    {
        "code": "ST0763",
        "name": "Artificial Intelligence (AI) Data Specialist",
        "level": 7,
        "description": (
            "Discover new AI solutions that use data to improve and automate "
            "business processes. Work with complex datasets, apply machine "
            "learning methodologies, and lead applied research."
        ),
        "minimum_weekly_otj_hours": 6.0,
        "available": True,
    },
    {
        "code": "ST0787",
        "name": "Systems Thinking Practitioner",
        "level": 7,
        "description": (
            "Apply a range of systems thinking methodologies to complex "
            "real-world problems and evaluate outcomes across organisational "
            "and societal systems."
        ),
        "minimum_weekly_otj_hours": 6.0,
        "available": True,
    },
    {
        "code": "ST0116",
        "name": "Software Developer",
        "level": 4,
        "description": (
            "Build and test high-quality code across front-end, back-end and "
            "database systems as part of a development team."
        ),
        "minimum_weekly_otj_hours": 6.0,
        "available": True,
    },
    {
        "code": "ST0585",
        "name": "Data Analyst",
        "level": 4,
        "description": (
            "Collect, organise and study data to provide new business insight "
            "and present findings to stakeholders."
        ),
        "minimum_weekly_otj_hours": 6.0,
        "available": False,
    },
]

STANDARDS_BY_CODE = {s["code"]: s for s in STANDARDS}


def get_minimum_otj_hours(standard_code: str) -> float:
    """Return the weekly OTJ minimum for *standard_code*."""
    standard = STANDARDS_BY_CODE.get(standard_code)
    if standard is None:
        raise InvalidInput("standard_code", f"Unknown apprenticeship standard '{standard_code}'.")
    return float(standard["minimum_weekly_otj_hours"])
