"""Configuration and constants for the catalog sync scripts."""

import os
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Tuple

from dotenv import load_dotenv

__all__ = [
    "PROJECT_ROOT",
    "BASE_URL",
    "PRODUCTS_PATH",
    "LISTING_PAGE_PARAM",
    "USER_AGENT",
    "HEADERS",
    "IMAGE_HEADERS",
    "REQUEST_TIMEOUT",
    "DOWNLOAD_TIMEOUT",
    "HEADLESS_TIMEOUT",
    "HEADLESS_SETTLE_MS",
    "MAX_REDIRECTS",
    "DELAY_LISTING",
    "DELAY_PRODUCT",
    "DELAY_DOWNLOAD",
    "DELAY_SEARCH",
    "DEFAULT_MAX_PAGES",
    "MAX_SEARCH_RESULTS",
    "MIN_PRICE",
    "MAX_PRICE",
    "DEFAULT_STOCK_QUANTITY",
    "MIN_LARGE_IMAGE_AREA",
    "DB_PATH",
    "DATA_DIR",
    "IMAGES_DIR",
    "PRODUCTS_JSON",
    "PRODUCTS_CSV",
    "KNOWN_BRANDS",
    "BRAND_WEBSITES",
    "CATEGORY_KEYWORDS",
    "HEALTH_CATEGORY_KEYWORDS",
    "FALLBACK_CATEGORY",
]

PROJECT_ROOT = Path(__file__).parent.parent

load_dotenv(dotenv_path=PROJECT_ROOT / ".env")

# Retailer site
BASE_URL = os.getenv("CATALOG_BASE_URL", "https://hmherbs.com").rstrip("/")
PRODUCTS_PATH = "/index.php/products"
LISTING_PAGE_PARAM = "ccm_paging_p"

# Browser-like headers; plain clients get blocked by some brand sites
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
IMAGE_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "image/*",
}

# Timeouts (seconds unless noted)
REQUEST_TIMEOUT = float(os.getenv("CATALOG_REQUEST_TIMEOUT", "15"))
DOWNLOAD_TIMEOUT = 15.0
HEADLESS_TIMEOUT = 30.0
HEADLESS_SETTLE_MS = 2000

MAX_REDIRECTS = 5

# Cooldown after each network call (seconds)
DELAY_LISTING = 0.3
DELAY_PRODUCT = float(os.getenv("CATALOG_DELAY", "2.0"))
DELAY_DOWNLOAD = 0.2
DELAY_SEARCH = 2.0

# Pagination
DEFAULT_MAX_PAGES = 37
MAX_SEARCH_RESULTS = 5

# Extraction plausibility
MIN_PRICE = 0.01
MAX_PRICE = 10000.0
DEFAULT_STOCK_QUANTITY = 100
MIN_LARGE_IMAGE_AREA = 20000

# Paths
DB_PATH = os.getenv("CATALOG_DB_PATH", "data/catalog.db")
DATA_DIR = Path(os.getenv("CATALOG_DATA_DIR", "data"))
IMAGES_DIR = Path(os.getenv("CATALOG_IMAGES_DIR", "images/products"))
PRODUCTS_JSON = DATA_DIR / "scraped-products.json"
PRODUCTS_CSV = DATA_DIR / "scraped-products.csv"


# =============================================================================
# Lookup tables
# =============================================================================
# Kept immutable; ProductPageParser and CatalogMatcher take them as arguments
# so alternate tables can be swapped in.

KNOWN_BRANDS: Tuple[str, ...] = (
    "Life Extension",
    "Now Foods",
    "Nature's Plus",
    "Terry Naturally",
    "Life-Flo",
    "Irwin Naturals",
    "Buried Treasure",
    "North American Herb & Spice",
    "Nature's Way",
    "Solaray",
    "Bluebonnet",
    "Source Naturals",
    "Garden of Life",
    "Carlson",
    "Gaia Herbs",
)

BRAND_WEBSITES: Mapping[str, str] = MappingProxyType({
    "Life Extension": "https://www.lifeextension.com",
    "Now Foods": "https://www.nowfoods.com",
    "Nature's Plus": "https://www.naturesplus.com",
    "Terry Naturally": "https://www.terrynaturally.com",
    "Life-Flo": "https://www.lifeflo.com",
    "Irwin Naturals": "https://www.irwinnaturals.com",
    "Buried Treasure": "https://www.buriedtreasure.com",
    "North American Herb & Spice": "https://www.northamericanherbandspice.com",
})

FALLBACK_CATEGORY = "General"

# Category name -> keywords. Declaration order breaks score ties (first wins).
CATEGORY_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "Vitamins": ("vitamin", "multivitamin", "vit", "b-complex", "b12", "b6", "d3",
                 "c", "e", "k2", "biotin", "folate", "niacin"),
    "Minerals": ("mineral", "calcium", "magnesium", "zinc", "iron", "selenium",
                 "chromium", "copper", "manganese", "potassium"),
    "Herbs & Botanicals": ("herb", "botanical", "ginkgo", "ginseng", "turmeric",
                           "echinacea", "milk thistle", "ashwagandha", "rhodiola",
                           "astragalus", "reishi", "chaga"),
    "Amino Acids": ("amino acid", "l-arginine", "l-lysine", "l-glutamine", "taurine",
                    "carnitine", "tyrosine", "tryptophan", "bcaa", "branch chain"),
    "Enzymes": ("enzyme", "digestive enzyme", "protease", "amylase", "lipase",
                "bromelain", "papain", "lactase"),
    "Probiotics": ("probiotic", "lactobacillus", "bifidobacterium", "acidophilus",
                   "culture", "flora"),
    "Omega & Fatty Acids": ("omega", "fish oil", "epa", "dha", "flax",
                            "evening primrose", "borage", "krill oil", "cod liver"),
    "Antioxidants": ("antioxidant", "coq10", "coenzyme q10", "alpha lipoic",
                     "resveratrol", "quercetin", "lycopene", "lutein", "zeaxanthin"),
    "Protein & Fitness": ("protein", "whey", "casein", "pea protein", "soy protein",
                          "creatine", "pre-workout", "post-workout", "bcaa"),
    "Weight Management": ("weight", "diet", "metabolism", "fat burner", "carb blocker",
                          "appetite", "slim", "lean"),
    "Sleep Support": ("sleep", "melatonin", "valerian", "chamomile", "passionflower",
                      "insomnia", "rest"),
    "Energy & Vitality": ("energy", "b12", "b-complex", "caffeine", "guarana",
                          "yerba mate", "rhodiola", "adaptogen"),
    "Digestive Health": ("digestive", "digestion", "stomach", "gut", "probiotic",
                         "enzyme", "fiber", "psyllium", "prebiotic"),
    "Immune Support": ("immune", "immunity", "elderberry", "echinacea", "vitamin c",
                       "zinc", "astragalus", "reishi"),
    "Joint & Bone Health": ("joint", "bone", "glucosamine", "chondroitin", "msm",
                            "calcium", "vitamin d", "osteoporosis", "arthritis"),
    "Heart Health": ("heart", "cardiac", "cardiovascular", "coq10", "omega",
                     "fish oil", "hawthorn", "garlic"),
    "Brain & Cognitive": ("brain", "cognitive", "memory", "focus", "ginkgo",
                          "phosphatidylserine", "dha", "omega"),
    "Skin Health": ("skin", "collagen", "biotin", "vitamin e", "hyaluronic",
                    "dermal", "complexion"),
    "Eye Health": ("eye", "vision", "lutein", "zeaxanthin", "bilberry",
                   "astaxanthin", "ocular"),
    "Hair & Nails": ("hair", "nail", "biotin", "collagen", "keratin", "silica"),
    "Men's Health": ("men", "male", "prostate", "testosterone", "saw palmetto",
                     "tribulus"),
    "Women's Health": ("women", "female", "menstrual", "menopause", "pms",
                       "evening primrose", "black cohosh"),
    "Pet Supplements": ("pet", "dog", "cat", "animal", "canine", "feline"),
    "Homeopathic": ("homeopathic", "homeopathy", "arnica", "belladonna", "nux vomica"),
    "Topical Products": ("cream", "ointment", "gel", "lotion", "topical", "apply",
                         "rub", "massage"),
    FALLBACK_CATEGORY: (),
})

# Tags attached to scraped products (not the catalog category)
HEALTH_CATEGORY_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "Blood Pressure": ("blood pressure", "hypertension", "cardiovascular"),
    "Heart Health": ("heart", "cardiac", "cardio", "circulation"),
    "Digestive Health": ("digestive", "digestion", "stomach", "gut", "probiotic"),
    "Joint & Arthritis": ("joint", "arthritis", "mobility", "inflammation"),
    "Immune Support": ("immune", "immunity", "defense", "antioxidant"),
    "Stress & Anxiety": ("stress", "anxiety", "calm", "relaxation"),
    "Sleep Support": ("sleep", "insomnia", "rest", "melatonin"),
    "Energy & Vitality": ("energy", "vitality", "fatigue", "endurance"),
    "Brain Health": ("brain", "cognitive", "memory", "focus"),
    "Women's Health": ("women", "female", "menstrual", "menopause"),
    "Men's Health": ("men", "male", "prostate", "testosterone"),
    "Pet Health": ("pet", "dog", "cat", "animal"),
    "Weight Management": ("weight", "diet", "metabolism", "carb blocker"),
    "Skin Health": ("skin", "dermal", "complexion", "cream"),
    "Eye Health": ("eye", "vision", "sight", "ocular"),
    "Liver Support": ("liver", "hepatic", "detox", "cleanse"),
    "Respiratory Health": ("respiratory", "lung", "breathing", "airway"),
    "Bone Health": ("bone", "calcium", "osteo", "skeletal"),
    "Anti-Aging": ("anti-aging", "aging", "longevity", "youth"),
})
