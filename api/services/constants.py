SIGN_NAMES = ["Aries","Taurus","Gemini","Cancer","Leo","Virgo","Libra","Scorpio","Sagittarius","Capricorn","Aquarius","Pisces"]

UNKNOWN_SIGN = "Unknown"

# (month, first day) where each sign begins, in calendar order.
SIGN_START_DATES = [
    (1, 20, "Aquarius"),
    (2, 19, "Pisces"),
    (3, 21, "Aries"),
    (4, 20, "Taurus"),
    (5, 21, "Gemini"),
    (6, 21, "Cancer"),
    (7, 23, "Leo"),
    (8, 23, "Virgo"),
    (9, 23, "Libra"),
    (10, 23, "Scorpio"),
    (11, 22, "Sagittarius"),
    (12, 22, "Capricorn"),
]

MOODS = [
    "Serene", "Hopeful", "Restless", "Curious", "Romantic", "Determined",
    "Overwhelmed", "Playful", "Reflective", "Energized", "Anxious", "Grateful",
    "Nostalgic", "Bold", "Tender", "Focused", "Adventurous", "Grounded",
    "Inspired", "Quiet", "Radiant", "Centered", "Open-hearted", "Creative",
]

PERSONALITIES = [
    "The Dreamer", "The Sage", "The Seeker", "The Guardian", "The Artist",
    "The Strategist", "The Healer", "The Warrior", "The Mystic", "The Jester",
    "The Builder", "The Explorer", "The Empath", "The Visionary", "The Rebel",
    "The Harmonizer", "The Storyteller", "The Scholar", "The Alchemist", "The Wayfinder",
]

SECTION_TITLES = ("Focus", "Relationships", "Action", "Reflection")
TRANSIT_TONES = ("soft", "neutral", "intense")
QUARTER_LABELS = ("Q1", "Q2", "Q3", "Q4")
ACTIVE_TAB_DEFAULT = "today"

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

BEST_HOURS_COUNT = 2
MAX_TRANSITS = 2
BEST_FLOW_COUNT = 2
HANDLE_GENTLY_COUNT = 1
STARTERS_COUNT = 3
KEY_DATES_COUNT = 3
POWER_MONTHS_COUNT = 2

ENERGY_SCORE_RANGE = (0, 100)
RATING_RANGE = (0, 5)
LUCKY_NUMBER_RANGE = (0, 999)

TEXT_MAX_LENGTH = 280
PLACEHOLDER_TOKEN = "__FILL"
