"""Display labels for the chat keyboard layer.

The engine works on ``ContractType`` codes only; these tables translate to
and from the emoji labels users tap on.
"""

from typing import Optional

from hummingbird.contracts.models import ContractType


CONTRACT_TYPE_LABELS: dict[ContractType, str] = {
    ContractType.CALL: "Rise ⬆️",
    ContractType.PUT: "Fall ⬇️",
    ContractType.DIGITEVEN: "Digits Evens 1️⃣",
    ContractType.DIGITODD: "Digits Odds 0️⃣",
    ContractType.DIGITDIFF: "Digit NOT Random 🎲",
    ContractType.DIGITUNDER_9: "Digits ⬇️9️⃣",
    ContractType.DIGITUNDER_8: "Digits ⬇️8️⃣",
    ContractType.DIGITUNDER_7: "Digits ⬇️7️⃣",
    ContractType.DIGITUNDER_6: "Digits ⬇️6️⃣",
    ContractType.DIGITOVER_0: "Digits ⬆️0️⃣",
    ContractType.DIGITOVER_1: "Digits ⬆️1️⃣",
    ContractType.DIGITOVER_2: "Digits ⬆️2️⃣",
    ContractType.DIGITOVER_3: "Digits ⬆️3️⃣",
}

_LABEL_TO_CONTRACT: dict[str, ContractType] = {
    label: code for code, label in CONTRACT_TYPE_LABELS.items()
}


def label_for(contract_type: ContractType) -> str:
    """Return the display label, falling back to the raw code."""
    return CONTRACT_TYPE_LABELS.get(contract_type, contract_type.value)


def contract_type_from_label(label: str) -> Optional[ContractType]:
    """Map a tapped keyboard label back to its code, or ``None``."""
    return _LABEL_TO_CONTRACT.get(label.strip())
