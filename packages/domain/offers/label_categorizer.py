"""
Label Categorizer - Keyword rules mapping a charge label to a category

Used to refine charges that were saved without a useful category
("OTHER", "LEISURE" or blank) before deciding whether they are worth a
market search.

Example:
- "Prélèvement EDF électricité" → ENERGY
- "Forfait mobile Sosh" → MOBILE
- "MAIF assurance auto" → INSURANCE_AUTO
"""
import structlog

from packages.domain.offers.charge_classifier import ChargeCategory

logger = structlog.get_logger()


class LabelCategorizer:
    """
    Ordered keyword table. First rule with a matching keyword wins.
    """

    # Checked in order: "orange" must win over generic words below it
    KEYWORD_RULES = (
        (ChargeCategory.ENERGY, (
            "edf", "engie", "total", "électricité", "electricite",
            "gaz", "énergie", "energie",
        )),
        (ChargeCategory.INTERNET, (
            "orange", "sfr", "bouygues", "free", "internet", "fibre", "box",
        )),
        (ChargeCategory.MOBILE, (
            "mobile", "téléphone", "telephone", "forfait",
        )),
        (ChargeCategory.INSURANCE, (
            "assurance", "axa", "maif", "macif", "matmut", "groupama",
        )),
        (ChargeCategory.LEISURE_STREAMING, (
            "netflix", "spotify", "disney", "amazon prime", "deezer",
            "canal", "streaming",
        )),
        (ChargeCategory.LEISURE_SPORT, (
            "sport", "fitness", "gym", "salle", "basic fit", "keep cool",
        )),
        (ChargeCategory.BANK, (
            "banque", "frais bancaires", "carte",
        )),
        (ChargeCategory.LOAN, (
            "prêt", "pret", "crédit", "credit", "emprunt",
        )),
        (ChargeCategory.TRANSPORT, (
            "transport", "navigo", "sncf", "ratp", "abonnement train",
        )),
    )

    INSURANCE_REFINEMENTS = (
        (ChargeCategory.INSURANCE_AUTO, ("auto", "voiture")),
        (ChargeCategory.INSURANCE_HOME, ("habitation", "maison", "logement")),
        (ChargeCategory.INSURANCE_HEALTH, ("santé", "sante", "mutuelle")),
    )

    # Stored categories that carry no usable information
    REFINABLE_CATEGORIES = frozenset({"", ChargeCategory.OTHER.value, ChargeCategory.LEISURE.value})

    def categorize_label(self, label: str) -> str:
        """
        Detect a category from a free-text charge label.

        Args:
            label: Charge label as typed by the user or bank

        Returns:
            Category value, "OTHER" when nothing matches
        """
        label_lower = (label or "").lower()

        for category, keywords in self.KEYWORD_RULES:
            if any(keyword in label_lower for keyword in keywords):
                if category == ChargeCategory.INSURANCE:
                    return self._refine_insurance(label_lower).value
                return category.value

        return ChargeCategory.OTHER.value

    def _refine_insurance(self, label_lower: str) -> ChargeCategory:
        for category, keywords in self.INSURANCE_REFINEMENTS:
            if any(keyword in label_lower for keyword in keywords):
                return category
        return ChargeCategory.INSURANCE_HOME

    def refine_category(self, category: str, label: str) -> str:
        """
        Replace an uninformative category with one detected from the label.

        Keeps the stored category when it is already specific, or when the
        label does not resolve to anything better.
        """
        current = (category or "").strip().upper()
        if current not in self.REFINABLE_CATEGORIES:
            return current

        refined = self.categorize_label(label)
        if refined in self.REFINABLE_CATEGORIES:
            return current

        logger.debug("charge_recategorized", from_category=current or None, to_category=refined)
        return refined


# Singleton instance
label_categorizer = LabelCategorizer()
