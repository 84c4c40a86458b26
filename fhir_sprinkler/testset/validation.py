"""Resource validation tests using the $validate operation."""

from fhir_sprinkler.client import FhirOperationError, OperationOutcome, params_resource
from fhir_sprinkler.framework import SprinklerModule, sprinkler_module, sprinkler_test
from fhir_sprinkler.framework import asserts


@sprinkler_module("Validation")
class ValidationTest(SprinklerModule):
    """Patient/$validate with one valid and several invalid patients."""

    async def _validate(self, fixture: str) -> OperationOutcome | None:
        """Validate a fixture; None when the server rejected it with an error."""
        resource = self.fixtures.load(f"validation/{fixture}")
        try:
            returned = await self.client.operation(
                "Patient", "validate", params_resource(resource=resource)
            )
        except FhirOperationError:
            return None
        if returned is None or returned.get("resourceType") != "OperationOutcome":
            return OperationOutcome()
        return OperationOutcome.model_validate(returned)

    async def _expect_rejected(self, fixture: str, message: str) -> None:
        outcome = await self._validate(fixture)
        if outcome is not None and not outcome.has_errors():
            asserts.fail(message)

    @sprinkler_test("VA01", "Validate creation of a valid resource")
    async def validate_valid_resource(self) -> None:
        outcome = await self._validate("patient-valid.json")
        if outcome is None or outcome.has_errors():
            asserts.fail("Server did not accept valid resource")

    @sprinkler_test("VA02", "Validate creation of an invalid resource (wrong name use)")
    async def validate_wrong_name_use(self) -> None:
        await self._expect_rejected(
            "patient-error-use.json",
            "Server accepted invalid resource with 'unofficial' as a value for "
            "Patient.name.use",
        )

    @sprinkler_test(
        "VA03", "Validate creation of an invalid resource (cardinality minus)"
    )
    async def validate_cardinality_minus(self) -> None:
        await self._expect_rejected(
            "patient-cardinality-minus.json",
            "Server accepted invalid resource with text.status cardinality of 0, "
            "should be 1.",
        )

    @sprinkler_test(
        "VA04", "Validate creation of an invalid resource (cardinality plus)"
    )
    async def validate_cardinality_plus(self) -> None:
        await self._expect_rejected(
            "patient-cardinality-plus.json",
            "Server accepted invalid resource with gender cardinality of 2, "
            "should be 1.",
        )

    @sprinkler_test(
        "VA05", "Validate creation of an invalid resource (constraint error)"
    )
    async def validate_constraint_error(self) -> None:
        await self._expect_rejected(
            "patient-constraint-error.json",
            "Server accepted invalid resource with a constraint error",
        )

    @sprinkler_test(
        "VA06", "Validate creation of an invalid resource (invalid element)"
    )
    async def validate_invalid_element(self) -> None:
        await self._expect_rejected(
            "patient-invalid-element.json",
            "Server accepted invalid resource with an invalid element.",
        )

    @sprinkler_test(
        "VA07", "Validate creation of an invalid resource (wrong narrative)"
    )
    async def validate_wrong_narrative(self) -> None:
        await self._expect_rejected(
            "patient-wrong-narrative.json",
            "Server accepted invalid resource with a wrong narrative.",
        )
