from __future__ import annotations

import random
from typing import Iterable

FIRST_NAMES = [
    "Achraf", "Sadio", "Victor", "Mohamed", "Riyad", "Youssef", "Kalidou", "Andre", "Thomas", "Wilfried",
    "Hakim", "Ismaila", "Samuel", "Ahmed", "Omar", "Karim", "Yassine", "Idrissa", "Franck", "Serge",
    "Kelechi", "Alex", "Ademola", "Wilfred", "Moses", "Emmanuel", "Jordan", "Inaki", "Kamaldeen", "Daniel",
    "Nicolas", "Sofiane", "Ramy", "Aissa", "Ismael", "Bertrand", "Edmond", "Bryan", "Chancel", "Cedric",
    "Amadou", "Cheikhou", "Pape", "Krepin", "Boulaye", "Nampalys", "Iliman", "Habib", "Lamine", "Abdou",
    "Trezeguet", "Mostafa", "Tarek", "Hamdi", "Mahmoud", "Amr", "Ellyes", "Wahbi", "Hannibal", "Aissa",
    "Bongani", "Percy", "Teboho", "Themba", "Lyle", "Ronwen", "Fiston", "Cedric", "Chancel", "Yoane",
    "Patson", "Fashion", "Enock", "Lameck", "Kings", "Michael", "Divine", "Olunga", "Joseph", "Musa",
]

LAST_NAMES = [
    "Hakimi", "Mane", "Osimhen", "Salah", "Mahrez", "En-Nesyri", "Koulibaly", "Onana", "Partey", "Zaha",
    "Ziyech", "Sarr", "Chukwueze", "Elneny", "Marmoush", "Benzema", "Bounou", "Gueye", "Kessie", "Aurier",
    "Iheanacho", "Iwobi", "Lookman", "Ndidi", "Simon", "Aina", "Ayew", "Williams", "Sulemana", "Amartey",
    "Pepe", "Feghouli", "Bensebaini", "Mandi", "Bennacer", "Mbeumo", "Mbemba", "Toko-Ekambi", "Anguissa", "Bakambu",
    "Diallo", "Kouyate", "Mendy", "Diatta", "Dia", "Ndiaye", "Camara", "Diarra", "Traore", "Kone",
    "Hassan", "Fathy", "Hegazi", "Ashour", "Trezeguet", "Zizo", "Skhiri", "Khazri", "Laidouni", "Msakni",
    "Zwane", "Tau", "Mokoena", "Zungu", "Foster", "Williams", "Mayele", "Wissa", "Kakuta", "Bolasie",
    "Daka", "Sakala", "Mwepu", "Banda", "Kangwa", "Olunga", "Wanyama", "Omondi", "Okumu", "Otieno",
    "Aboubakar", "Choupo-Moting", "Castelletto", "Hongla", "Ngamaleu", "Kunde", "Fai", "Tolo", "Nkoudou", "Ntcham",
    "Bissouma", "Haidara", "Djenepo", "Doucoure", "Sangare", "Hainaut", "Dieng", "Samassekou", "Kouyate", "Maiga",
]


# Random draws tried before falling back to the initialled form.
MAX_DRAWS = 200


class NameGenerator:
    """Hands out player names that are unique within one tournament."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)
        self._taken: set[str] = set()

    def reserve(self, names: Iterable[str]) -> None:
        self._taken.update(names)

    def _claim(self, name: str) -> bool:
        if name in self._taken:
            return False
        self._taken.add(name)
        return True

    def next_name(self) -> str:
        for _ in range(MAX_DRAWS):
            name = f"{self._rng.choice(FIRST_NAMES)} {self._rng.choice(LAST_NAMES)}"
            if self._claim(name):
                return name

        # Pool is crowded: "S. Mane", then "S. Mane II", "S. Mane III", ...
        first = self._rng.choice(FIRST_NAMES)
        base = f"{first[0]}. {self._rng.choice(LAST_NAMES)}"
        if self._claim(base):
            return base
        generation = 2
        while True:
            suffix = "I" * generation if generation < 4 else str(generation)
            if self._claim(f"{base} {suffix}"):
                return f"{base} {suffix}"
            generation += 1
