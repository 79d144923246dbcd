"""Static disease content used to enrich classifier output.

The catalog is read-only. Lookups hand back deep copies so callers can
never mutate the shared tables.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List

PRODUCT_PHOTO_A = "https://images.unsplash.com/photo-1622557850710-0c33f1c9a9a5?w=400&q=80"
PRODUCT_PHOTO_B = "https://images.unsplash.com/photo-1620662736427-b8a198f52a4d?w=400&q=80"
PRODUCT_PHOTO_C = "https://images.unsplash.com/photo-1615811361523-6bd03d7748e7?w=400&q=80"

DISEASE_CLASSES: List[Dict[str, str]] = [
    {"id": "healthy", "name": "Healthy", "plantType": "General"},
    {"id": "late_blight", "name": "Late Blight", "plantType": "Tomato"},
    {"id": "early_blight", "name": "Early Blight", "plantType": "Tomato"},
    {"id": "bacterial_spot", "name": "Bacterial Spot", "plantType": "Tomato"},
    {"id": "black_rot", "name": "Black Rot", "plantType": "Grape"},
    {"id": "powdery_mildew", "name": "Powdery Mildew", "plantType": "Cucumber"},
    {"id": "downy_mildew", "name": "Downy Mildew", "plantType": "Cucumber"},
    {"id": "cercospora_leaf_spot", "name": "Cercospora Leaf Spot", "plantType": "Strawberry"},
    {"id": "common_rust", "name": "Common Rust", "plantType": "Corn"},
    {"id": "northern_leaf_blight", "name": "Northern Leaf Blight", "plantType": "Corn"},
]

DISEASE_IDS = tuple(entry["id"] for entry in DISEASE_CLASSES)


def _treatment(name: str, description: str, effectiveness: int, method: str) -> Dict[str, Any]:
    return {"name": name, "description": description, "effectiveness": effectiveness, "applicationMethod": method}


def _product(name: str, type_: str, description: str, image_url: str) -> Dict[str, Any]:
    return {"name": name, "type": type_, "description": description, "imageUrl": image_url}


DISEASE_DETAILS: Dict[str, Dict[str, Any]] = {
    "late_blight": {
        "description": (
            "Late blight is a destructive disease affecting tomatoes and potatoes. It spreads rapidly in cool, "
            "wet conditions and can destroy crops within days if not treated."
        ),
        "symptoms": [
            "Dark brown spots on leaves",
            "White fuzzy growth on undersides",
            "Rotting fruit",
            "Rapid plant collapse",
        ],
        "treatmentOptions": [
            _treatment(
                "Fungicide Application",
                "Apply copper-based fungicide to affected areas and surrounding plants.",
                85,
                "Spray evenly on leaf surfaces, focusing on both top and bottom sides.",
            ),
            _treatment(
                "Plant Removal",
                "Remove and destroy infected plants to prevent spread to healthy plants.",
                90,
                "Carefully remove entire plants, seal in plastic bags, and dispose of properly.",
            ),
            _treatment(
                "Cultural Control",
                "Improve air circulation and avoid overhead watering to reduce humidity.",
                70,
                "Space plants properly and water at soil level in the morning.",
            ),
        ],
        "productRecommendations": [
            _product(
                "Copper Fungicide",
                "Organic Fungicide",
                "Broad-spectrum fungicide that prevents infection of healthy tissue.",
                PRODUCT_PHOTO_A,
            ),
            _product("Chlorothalonil", "Chemical Fungicide", "Protective fungicide that prevents spore germination.", PRODUCT_PHOTO_B),
        ],
    },
    "early_blight": {
        "description": (
            "Early blight is a common fungal disease that affects tomato and potato plants, causing leaf spots, "
            "stem cankers, and fruit rot."
        ),
        "symptoms": [
            "Dark brown spots with concentric rings",
            "Yellowing around lesions",
            "Lower leaves affected first",
            "Stem lesions",
        ],
        "treatmentOptions": [
            _treatment(
                "Fungicide Treatment",
                "Apply fungicide containing chlorothalonil or copper as soon as symptoms appear.",
                80,
                "Spray all plant surfaces thoroughly every 7-10 days.",
            ),
            _treatment(
                "Sanitation",
                "Remove infected leaves and plant debris to reduce spread.",
                75,
                "Carefully prune affected parts and dispose of properly, not in compost.",
            ),
            _treatment(
                "Crop Rotation",
                "Avoid planting tomatoes or potatoes in the same location for 2-3 years.",
                65,
                "Plan garden layout to rotate nightshade family crops.",
            ),
        ],
        "productRecommendations": [
            _product("Daconil", "Chemical Fungicide", "Contains chlorothalonil, effective against early blight.", PRODUCT_PHOTO_C),
            _product(
                "Bonide Copper Fungicide",
                "Organic Fungicide",
                "Copper-based fungicide suitable for organic gardening.",
                PRODUCT_PHOTO_A,
            ),
        ],
    },
    "bacterial_spot": {
        "description": (
            "Bacterial spot is a serious disease affecting tomatoes and peppers, causing spots on leaves, stems, "
            "and fruit that can lead to defoliation and yield loss."
        ),
        "symptoms": [
            "Small, dark, water-soaked spots on leaves",
            "Spots with yellow halos",
            "Scabby lesions on fruit",
            "Defoliation",
        ],
        "treatmentOptions": [
            _treatment(
                "Copper Treatment",
                "Apply copper-based bactericide at first sign of disease.",
                70,
                "Spray plants thoroughly, covering all surfaces every 7-10 days.",
            ),
            _treatment(
                "Plant Spacing",
                "Increase spacing between plants to improve air circulation.",
                60,
                "Space plants at least 24 inches apart in all directions.",
            ),
            _treatment(
                "Avoid Wet Foliage",
                "Water at the base of plants and avoid overhead irrigation.",
                65,
                "Use drip irrigation or soaker hoses instead of sprinklers.",
            ),
        ],
        "productRecommendations": [
            _product("Kocide 3000", "Copper Hydroxide", "Effective copper formulation for bacterial diseases.", PRODUCT_PHOTO_A),
            _product("Agri-mycin 17", "Streptomycin Sulfate", "Antibiotic treatment for bacterial plant diseases.", PRODUCT_PHOTO_B),
        ],
    },
    "black_rot": {
        "description": (
            "Black rot is a serious fungal disease of grapes that can destroy entire vineyards if not controlled. "
            "It affects leaves, shoots, and fruit."
        ),
        "symptoms": [
            "Circular lesions with dark borders on leaves",
            "Brown spots on berries that expand",
            "Mummified fruit",
            "Cankers on stems",
        ],
        "treatmentOptions": [
            _treatment(
                "Fungicide Program",
                "Apply preventative fungicides from bud break through harvest.",
                85,
                "Spray on a 10-14 day schedule, more frequently in wet weather.",
            ),
            _treatment(
                "Canopy Management",
                "Prune and train vines to improve air circulation and sun exposure.",
                75,
                "Remove excess shoots and position remaining shoots for maximum airflow.",
            ),
            _treatment(
                "Sanitation",
                "Remove mummified fruit and infected plant parts.",
                70,
                "Prune out infected material and destroy (don't compost).",
            ),
        ],
        "productRecommendations": [
            _product("Mancozeb", "Protective Fungicide", "Broad-spectrum fungicide effective against black rot.", PRODUCT_PHOTO_B),
            _product(
                "Myclobutanil",
                "Systemic Fungicide",
                "Provides both protective and curative action against black rot.",
                PRODUCT_PHOTO_C,
            ),
        ],
    },
    "powdery_mildew": {
        "description": (
            "Powdery mildew is a fungal disease that affects a wide range of plants. It appears as white powdery "
            "spots on leaves and stems, and can reduce yield and quality."
        ),
        "symptoms": [
            "White powdery spots on leaves and stems",
            "Yellowing leaves",
            "Distorted new growth",
            "Premature leaf drop",
        ],
        "treatmentOptions": [
            _treatment(
                "Sulfur Application",
                "Apply sulfur-based fungicide at first sign of infection.",
                80,
                "Dust or spray plants thoroughly, covering all surfaces.",
            ),
            _treatment(
                "Potassium Bicarbonate",
                "Apply potassium bicarbonate spray as an organic treatment.",
                75,
                "Mix according to label directions and spray all plant surfaces.",
            ),
            _treatment(
                "Improve Air Circulation",
                "Prune plants to improve air flow and reduce humidity.",
                65,
                "Remove crowded stems and space plants properly.",
            ),
        ],
        "productRecommendations": [
            _product(
                "Safer Brand Garden Fungicide",
                "Sulfur-Based",
                "OMRI listed sulfur fungicide for organic gardening.",
                PRODUCT_PHOTO_A,
            ),
            _product(
                "GreenCure",
                "Potassium Bicarbonate",
                "Organic fungicide that changes leaf surface pH to prevent infection.",
                PRODUCT_PHOTO_C,
            ),
        ],
    },
    "healthy": {
        "description": (
            "Your plant appears healthy with no signs of disease. Continue with regular care and maintenance to "
            "keep it thriving."
        ),
        "symptoms": [],
        "treatmentOptions": [
            _treatment(
                "Regular Maintenance",
                "Continue with proper watering, fertilization, and pest monitoring.",
                95,
                "Follow recommended care guidelines for your specific plant type.",
            ),
            _treatment(
                "Preventative Care",
                "Apply preventative treatments during high-risk disease periods.",
                85,
                "Use organic or chemical preventatives according to seasonal needs.",
            ),
        ],
        "productRecommendations": [
            _product(
                "Balanced Fertilizer",
                "Plant Nutrition",
                "Provides essential nutrients for continued plant health.",
                PRODUCT_PHOTO_C,
            ),
            _product("Neem Oil", "Preventative Treatment", "Natural product that prevents various pests and diseases.", PRODUCT_PHOTO_A),
        ],
    },
}

_CLASSES_BY_ID = {entry["id"]: entry for entry in DISEASE_CLASSES}


def _generic_info(name: str, plant_type: str) -> Dict[str, Any]:
    return {
        "name": name,
        "plantType": plant_type,
        "description": f"{name} is a plant disease affecting {plant_type} plants.",
        "symptoms": ["Leaf discoloration", "Stunted growth"],
        "treatmentOptions": [
            _treatment(
                "General Treatment",
                "Consult with a plant specialist for specific treatment options.",
                70,
                "As recommended by specialist.",
            )
        ],
        "productRecommendations": [
            _product(
                "General Fungicide",
                "Broad Spectrum",
                "A general treatment that may help with various plant diseases.",
                PRODUCT_PHOTO_A,
            )
        ],
    }


def is_known_disease(identifier: str) -> bool:
    return identifier in _CLASSES_BY_ID


def get_disease_info(identifier: str) -> Dict[str, Any]:
    """Return name, plantType, description, symptoms, treatmentOptions and productRecommendations.

    Known classes without detailed content, and unknown identifiers, get a
    generic entry instead of an error.
    """
    entry = _CLASSES_BY_ID.get(identifier)
    if entry is None:
        name = identifier.replace("_", " ").replace("-", " ").strip().title() or "Unknown Condition"
        return _generic_info(name, "Unknown")

    details = DISEASE_DETAILS.get(identifier)
    if details is None:
        return _generic_info(entry["name"], entry["plantType"])

    info = {"name": entry["name"], "plantType": entry["plantType"]}
    info.update(copy.deepcopy(details))
    return info


def get_all_disease_info() -> Dict[str, Dict[str, Any]]:
    return {identifier: get_disease_info(identifier) for identifier in DISEASE_IDS}
