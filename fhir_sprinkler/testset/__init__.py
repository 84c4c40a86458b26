"""Built-in test set, registered as the ``default`` test set entry point."""

from fhir_sprinkler.testset.all_resources import AllResourcesTest
from fhir_sprinkler.testset.binary import BinaryTest
from fhir_sprinkler.testset.conformance import ConformanceTest
from fhir_sprinkler.testset.content_type import ContentTypeTest
from fhir_sprinkler.testset.create_update_delete import CreateUpdateDeleteTest
from fhir_sprinkler.testset.history import HistoryTest
from fhir_sprinkler.testset.read import ReadTest
from fhir_sprinkler.testset.search import SearchTest
from fhir_sprinkler.testset.tags import TagTest
from fhir_sprinkler.testset.validation import ValidationTest

# Modules run in this order.
__all__ = [
    "ReadTest",
    "CreateUpdateDeleteTest",
    "HistoryTest",
    "SearchTest",
    "TagTest",
    "BinaryTest",
    "ValidationTest",
    "ConformanceTest",
    "ContentTypeTest",
    "AllResourcesTest",
]
