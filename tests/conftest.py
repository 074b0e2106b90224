import threading
import time
import zlib
from typing import Dict, List, Optional

import numpy as np
import pytest

from nightreign_corpus.embeddings import device as device_module
from nightreign_corpus.embeddings.device import DeviceConfig
from nightreign_corpus.normalizer.cache import NormalizedCache


class FakeModel:
    """Stands in for a SentenceTransformer: deterministic unit vectors per text."""

    def __init__(self, dim: int = 8, fail_on: Optional[List[str]] = None):
        self.dim = dim
        self.fail_on = set(fail_on or [])
        self.calls: List[List[str]] = []

    def encode(self, texts, batch_size=32, convert_to_numpy=True, normalize_embeddings=True, show_progress_bar=False):
        self.calls.append(list(texts))
        if any(t in self.fail_on for t in texts):
            raise RuntimeError("tokenizer exploded")
        rows = []
        for text in texts:
            rng = np.random.default_rng(zlib.crc32(text.encode("utf-8")))
            vec = rng.standard_normal(self.dim).astype(np.float32)
            rows.append(vec / np.linalg.norm(vec))
        return np.stack(rows)

    def get_sentence_embedding_dimension(self):
        return self.dim


class CountingFactory:
    """Model factory recording every (model_name, device) load."""

    def __init__(self, model: Optional[FakeModel] = None, fail_devices=(), delay: float = 0.0):
        self.model = model or FakeModel()
        self.fail_devices = set(fail_devices)
        self.delay = delay
        self.loads: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, model_name: str, device: str):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.loads.append(device)
        if device in self.fail_devices:
            raise RuntimeError(f"cannot load on {device}")
        return self.model


CPU = DeviceConfig(device="cpu", gpu_requested=False, gpu_available=False)


@pytest.fixture
def cache(tmp_path):
    return NormalizedCache(cache_dir=str(tmp_path / "normalized"))


@pytest.fixture(autouse=True)
def _reset_device_config():
    device_module.reset_device_config()
    yield
    device_module.reset_device_config()


@pytest.fixture
def gladius() -> Dict:
    return {
        "type": "boss",
        "name": "Gladius",
        "category": "Night Lord",
        "weaknesses": ["fire"],
        "stance": 160,
        "parryInfo": {"canParry": False},
    }


@pytest.fixture
def sample_records() -> List[Dict]:
    """One parser-shaped record per content type."""
    return [
        {
            "type": "boss",
            "name": "Gladius, Beast of Night",
            "category": "Night Lord",
            "location": "Limveld",
            "weaknesses": ["Holy", "Fire"],
            "phases": [
                {"name": "Phase 1", "description": "Three-headed wolf"},
                {"name": "Phase 2", "description": "Splits apart", "threshold": "50% HP"},
            ],
            "strategies": ["Stay close.", "Use holy damage."],
            "rewards": [{"name": "Night Lord's Relic"}],
            "hpByPlayerCount": {"solo": 5400, "duo": 8100, "trio": 11250},
            "stance": 160,
            "parryInfo": {"canParry": False},
            "strongerVs": ["Frostbite"],
            "damageTypesDealt": ["Standard", "Fire"],
            "statusEffectsInflicted": ["Blood Loss"],
            "statusResistances": {"sleep": {"immune": True}, "poison": {"value": 250}},
        },
        {
            "type": "weapon",
            "name": "Uchigatana",
            "weaponType": "Katana",
            "description": "A blade of the Land of Reeds.",
            "stats": {"physicalDamage": 115, "critical": 100},
            "statusBuildup": {"bloodLoss": 45},
            "scaling": {"strength": "D", "dexterity": "B"},
            "skill": "Unsheathe",
            "requirements": {"strength": 11, "dexterity": 15},
            "weight": 5.5,
            "uniqueEffect": "Causes blood loss buildup",
        },
        {
            "type": "enemy",
            "name": "Crucible Knight",
            "category": "Knight",
            "locations": ["Stormhill Evergaol"],
            "weaknesses": ["Lightning"],
            "drops": ["Crucible Axe Armor"],
            "description": "Keep your distance from the tail swipe.",
        },
        {
            "type": "relic",
            "name": "Glass Necklace",
            "color": "Red",
            "tier": "Delicate",
            "effects": ["Improved fire attack power", "Vigor +1"],
        },
        {
            "type": "nightfarer",
            "name": "Wylder",
            "stats": {"vigor": 15, "strength": 14, "mind": 9},
            "passive": {"name": "Sixth Sense", "description": "Survive one fatal blow."},
            "skill": {"name": "Claw Shot", "description": "Grapple toward enemies with a weapon hook."},
            "vessel": {"name": "Wylder's Chalice", "description": "Holds two relics."},
        },
        {
            "type": "skill",
            "name": "Glintblade Phalanx",
            "fpCost": 8,
            "weaponTypes": ["Straight Sword", "Greatsword"],
            "effect": "Summons glintblades that deal magic damage.",
        },
        {
            "type": "talisman",
            "name": "Erdtree's Favor",
            "effect": "Raises maximum HP, stamina and equip load",
            "weight": 0.9,
        },
        {
            "type": "spell",
            "name": "Glintstone Pebble",
            "spellType": "Sorcery",
            "fpCost": 7,
            "slots": 1,
            "effect": "Fires a glintstone projectile.",
            "requirements": {"intelligence": 10},
        },
        {
            "type": "armor",
            "name": "Knight Helm",
            "slot": "Head",
            "damageNegation": {"physical": 5.1, "fire": 4.2},
            "resistance": {"immunity": 22, "poise": 5},
            "weight": 4.1,
        },
        {
            "type": "shield",
            "name": "Brass Shield",
            "shieldType": "Medium Shield",
            "guard": {"physical": 100, "magic": 40},
            "guardBoost": 55,
            "skill": "Parry",
            "weight": 6.5,
            "requirements": {"strength": 16},
        },
        {
            "type": "npc",
            "name": "Smithing Master Hewg",
            "role": "Blacksmith",
            "location": "Roundtable Hold",
            "services": ["Upgrade weapons"],
        },
        {
            "type": "merchant",
            "name": "Twin Maiden Husks",
            "location": "Roundtable Hold",
            "inventory": [
                {"name": "Smithing Stone [1]", "price": 200},
                {"name": "Ash of War: Lion's Claw", "price": 1500},
            ],
        },
        {
            "type": "location",
            "name": "Stormveil Castle",
            "region": "Limgrave",
            "description": "A legacy castle.",
            "items": ["Golden Seed"],
            "enemies": ["Soldier"],
            "bosses": ["Margit"],
        },
        {
            "type": "expedition",
            "name": "Night of the Beast",
            "difficulty": "Normal",
            "recommendedLevel": 15,
            "objectives": ["Defeat Gladius"],
            "rewards": ["Relic"],
            "description": "Bring fire.",
        },
        {
            "type": "item",
            "name": "Stonesword Key",
            "category": "Key Item",
            "effect": "Unlocks an imp statue seal",
            "locations": ["Stormveil Castle"],
            "purchaseLocations": [{"merchantName": "Twin Maiden Husks", "price": 4000}],
        },
    ]
