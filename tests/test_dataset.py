"""Tests for DataSet population, calculation and validation."""

from __future__ import annotations

import logging

import pytest

from blackboard.model import (
    Culture,
    DataSet,
    IssueSeverity,
    MissingArgumentError,
    ProtocolDescriptor,
    TypeOfValue,
    UnknownReferenceError,
    ValueDescriptor,
)
from tests.factories import GENDER_FIELD_ID, single_field_protocol


def _add(protocol: ProtocolDescriptor, **attributes: object) -> ValueDescriptor:
    descriptor = ValueDescriptor(**attributes)
    protocol.sections[0].values.append(descriptor)
    return descriptor


class TestModelErrors:
    """Protocols with model issues make datasets unusable."""

    def test_model_errors_are_detected_when_building_dataset(
        self, bmi_protocol: ProtocolDescriptor, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Duplicated IDs produce one issue and an unusable dataset."""
        _add(bmi_protocol, reference="Value")
        _add(bmi_protocol, reference="Value")

        with caplog.at_level(logging.WARNING, logger="blackboard.model.dataset"):
            dataset = DataSet(bmi_protocol)

        assert len(dataset.issues) == 1
        assert not dataset.is_usable
        assert len(dataset) == 0
        assert "not usable" in caplog.text

    def test_unusable_dataset_rejects_values(self, bmi_protocol: ProtocolDescriptor) -> None:
        """An unusable dataset knows no fields."""
        _add(bmi_protocol, reference="", name="no id")

        dataset = DataSet(bmi_protocol)

        with pytest.raises(UnknownReferenceError):
            dataset.add_value("Weight", 1)

    def test_missing_data_is_detected_when_calculating(self, bmi_protocol: ProtocolDescriptor) -> None:
        """A calculated field referring to a missing value is a model error."""
        _add(bmi_protocol, reference="a")
        _add(bmi_protocol, reference="b", calculated_value_expression="a * 2")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert len(dataset.issues) == 1
        issue = dataset.issues[0]
        assert issue.severity is IssueSeverity.MODEL_ERROR
        assert issue.reference == "b"
        assert "cannot evaluate expression 'a * 2'" in issue.message
        assert "b" not in dataset

    def test_multiple_expression_errors_are_all_detected(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Errors in default, enabled-if and calculated expressions are all reported."""
        _add(
            bmi_protocol,
            reference="Value1",
            calculated_value_expression="invalid",
            enabled_if_expression="invalid",
        )
        _add(bmi_protocol, reference="Value2", default_value_expression="invalid")
        _add(
            bmi_protocol,
            reference="Value3",
            calculated_value_expression="invalid",
            enabled_if_expression="true",
        )

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert len(dataset.issues) >= 3
        assert {issue.reference for issue in dataset.issues} == {"Value1", "Value2", "Value3"}

    @pytest.mark.parametrize(
        "expression",
        ["1" * 5000, "+".join(["1"] * 5000), "+".join(["1"] * 20000)],
        ids=["long-literal", "long-chain", "very-long-chain"],
    )
    def test_oversized_default_expression_is_one_model_error(self, expression: str) -> None:
        """Expressions too large to handle are reported against the field when building."""
        dataset = DataSet(single_field_protocol(default_value_expression=expression))

        assert len(dataset.issues) == 1
        assert dataset.issues[0].severity is IssueSeverity.MODEL_ERROR
        assert dataset.issues[0].reference == "a"
        assert "a" not in dataset

    @pytest.mark.parametrize(
        "expression",
        ["1" * 5000, "+".join(["1"] * 5000)],
        ids=["long-literal", "long-chain"],
    )
    def test_oversized_calculated_expression_is_one_model_error(self, expression: str) -> None:
        """calculate() records the failure instead of raising."""
        dataset = DataSet(single_field_protocol(calculated_value_expression=expression))
        dataset.calculate()

        assert len(dataset.issues) == 1
        assert dataset.issues[0].severity is IssueSeverity.MODEL_ERROR
        assert "a" not in dataset


class TestAddValue:
    """Storing external values."""

    def test_invalid_arguments_raise(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Foreign descriptors, None and unknown or blank references are rejected."""
        dataset = DataSet(bmi_protocol)

        with pytest.raises(UnknownReferenceError):
            dataset.add_value(ValueDescriptor(reference="a"), 1)
        with pytest.raises(MissingArgumentError):
            dataset.add_value(None, 1)  # type: ignore[arg-type]
        with pytest.raises(UnknownReferenceError):
            dataset.add_value("unknown", 1)
        with pytest.raises(UnknownReferenceError):
            dataset.add_value("  ", 1)

    def test_stored_values_can_be_read(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Values added by descriptor or by reference are readable."""
        a = _add(bmi_protocol, reference="a")
        _add(bmi_protocol, reference="b")

        dataset = DataSet(bmi_protocol)
        dataset.add_value(a, 1.0)
        dataset.add_value("B", 2.0)
        dataset.calculate()

        assert dataset["a"].value == 1.0
        assert dataset["b"].value == 2.0
        assert dataset["A"].descriptor is a
        assert dataset.issues.has_errors is False

    def test_adding_a_value_replaces_and_marks_dirty(self, bmi_protocol: ProtocolDescriptor) -> None:
        """add_value replaces previous values and marks the dataset dirty."""
        dataset = DataSet(bmi_protocol)
        dataset.calculate()
        assert not dataset.is_dirty

        dataset.add_value("Weight", 70)
        dataset.add_value("weight", 72)

        assert dataset.is_dirty
        assert dataset["Weight"].value == 72

        dataset.calculate()
        assert not dataset.is_dirty

    def test_values_view_is_read_only(self, bmi_protocol: ProtocolDescriptor) -> None:
        """values is a read-only mapping."""
        dataset = DataSet(bmi_protocol)

        with pytest.raises(TypeError):
            dataset.values["Weight"] = None  # type: ignore[index]

    def test_get_and_missing_lookup(self, bmi_protocol: ProtocolDescriptor) -> None:
        """get() returns a default; indexing raises KeyError."""
        dataset = DataSet(bmi_protocol)

        assert dataset.get("Weight") is None
        with pytest.raises(KeyError):
            dataset["Weight"]

    def test_culture_cannot_be_none(self, bmi_protocol: ProtocolDescriptor) -> None:
        """The culture setter rejects None."""
        dataset = DataSet(bmi_protocol)

        with pytest.raises(MissingArgumentError):
            dataset.culture = None  # type: ignore[assignment]

        dataset.culture = Culture.from_name("it-IT")
        assert dataset.culture.decimal_separator == ","


class TestDefaultsAndCalculatedValues:
    """Default and calculated expressions."""

    def test_literal_and_calculated_defaults(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Defaults are evaluated when the dataset is created."""
        _add(bmi_protocol, reference="Literal", default_value_expression="2")
        _add(bmi_protocol, reference="LiteralExpression", default_value_expression="2 + 2")

        dataset = DataSet(bmi_protocol)

        assert dataset["Literal"].value == 2
        assert dataset["LiteralExpression"].value == 4
        assert dataset[GENDER_FIELD_ID].value == 0

    def test_defaults_can_be_suppressed(self, bmi_protocol: ProtocolDescriptor) -> None:
        """populate_defaults=False leaves the dataset empty."""
        dataset = DataSet(bmi_protocol, populate_defaults=False)

        assert len(dataset) == 0

    def test_calculated_value_depends_on_defaults(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Calculated fields see default values."""
        _add(bmi_protocol, reference="a", default_value_expression="2")
        _add(bmi_protocol, reference="b", default_value_expression="2 + 2")
        _add(bmi_protocol, reference="c", calculated_value_expression="a + b")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert dataset["a"].value == 2
        assert dataset["b"].value == 4
        assert dataset["c"].value == 6

    def test_calculated_value_depends_on_defaults_and_external_values(
        self, bmi_protocol: ProtocolDescriptor
    ) -> None:
        """External values and defaults are both visible to calculated fields."""
        _add(bmi_protocol, reference="a")
        _add(bmi_protocol, reference="b", default_value_expression="2 + 2")
        _add(bmi_protocol, reference="c", calculated_value_expression="a + b")

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 2.0)
        dataset.calculate()

        assert dataset["c"].value == 6.0

    def test_body_mass_index(self, bmi_protocol: ProtocolDescriptor) -> None:
        """A multi-line calculated expression over bracketed identifiers."""
        _add(
            bmi_protocol,
            reference="BMI",
            calculated_value_expression="[Weight]\r\n / pow([Height] / 100, 2)",
            warning_if_expression="this >= 25",
            warning_message="Overweight",
        )

        dataset = DataSet(bmi_protocol)
        dataset.add_value("Weight", 90)
        dataset.add_value("Height", 180)
        dataset.calculate()

        assert dataset["BMI"].value == pytest.approx(27.78, abs=0.01)
        assert [issue.message for issue in dataset.issues] == ["Overweight"]
        assert not dataset.issues.has_errors

    def test_disabled_calculated_field_is_not_stored(self, bmi_protocol: ProtocolDescriptor) -> None:
        """enabled-if false skips the calculated field."""
        _add(
            bmi_protocol,
            reference="Pregnancy",
            calculated_value_expression="1",
            enabled_if_expression="Gender = 1",
        )

        dataset = DataSet(bmi_protocol)
        dataset.calculate()
        assert "Pregnancy" not in dataset

        dataset.add_value(GENDER_FIELD_ID, 1)
        dataset.calculate()
        assert dataset["Pregnancy"].value == 1

    def test_calculated_fields_see_earlier_calculated_fields(
        self, bmi_protocol: ProtocolDescriptor
    ) -> None:
        """Calculated fields are evaluated in protocol order."""
        _add(bmi_protocol, reference="x", calculated_value_expression="2")
        _add(bmi_protocol, reference="y", calculated_value_expression="x * 10")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert dataset["y"].value == 20

    def test_blank_reference_calculated_field_is_not_stored(
        self, bmi_protocol: ProtocolDescriptor
    ) -> None:
        """Calculated fields without a reference are legal but never stored."""
        _add(bmi_protocol, reference="", name="Display only", calculated_value_expression="1 + 1")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert dataset.is_usable
        assert [item.reference for item in dataset] == [GENDER_FIELD_ID]


class TestValidationRules:
    """warning-if and valid-if rules."""

    def test_external_value_alert_adds_warning(self, bmi_protocol: ProtocolDescriptor) -> None:
        """warning-if true adds a warning."""
        _add(bmi_protocol, reference="a", warning_if_expression="this > 5")

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 6)
        dataset.calculate()

        assert len(dataset.issues) == 1
        assert dataset.issues[0].severity is IssueSeverity.WARNING
        assert dataset.issues[0].reference == "a"
        assert dataset.issues.warnings == [dataset.issues[0]]

    def test_invalid_external_value_adds_error(self, bmi_protocol: ProtocolDescriptor) -> None:
        """valid-if false adds a validation error with a default message."""
        _add(bmi_protocol, reference="a", valid_if_expression="this > 5")

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 1.0)
        dataset.calculate()

        assert len(dataset.issues) == 1
        assert dataset.issues[0].severity is IssueSeverity.VALIDATION_ERROR
        assert dataset.issues[0].message == "Value '1' for 'a' is not valid."

    def test_custom_validation_message(self, bmi_protocol: ProtocolDescriptor) -> None:
        """The field validation message replaces the default one."""
        _add(
            bmi_protocol,
            reference="a",
            valid_if_expression="this > 5",
            validation_message="Too small",
        )

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 1)
        dataset.calculate()

        assert [issue.message for issue in dataset.issues] == ["Too small"]

    def test_calculated_value_validation_is_applied(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Calculated fields are validated after they are stored."""
        _add(bmi_protocol, reference="a", valid_if_expression="this < 5")
        _add(
            bmi_protocol,
            reference="b",
            calculated_value_expression="a * 2",
            valid_if_expression="this < 6",
        )

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 4)
        dataset.calculate()

        assert len(dataset.issues) == 1
        assert dataset.issues[0].reference == "b"
        assert dataset.issues[0].severity is IssueSeverity.VALIDATION_ERROR

    def test_invalid_external_value_skips_calculation(self, bmi_protocol: ProtocolDescriptor) -> None:
        """When base fields are invalid, calculated fields are not evaluated."""
        _add(bmi_protocol, reference="a", valid_if_expression="this < 5")
        _add(
            bmi_protocol,
            reference="b",
            calculated_value_expression="a * 2",
            valid_if_expression="this < 10",
        )

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 5)
        dataset.calculate()

        assert len(dataset.issues) == 1
        assert dataset.issues[0].reference == "a"
        assert "b" not in dataset
        assert dataset.is_dirty

    def test_alerted_and_invalid_value_has_both_issues(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Warnings are checked before validity; both are reported."""
        _add(
            bmi_protocol,
            reference="a",
            warning_if_expression="this > 3",
            valid_if_expression="this < 5",
        )

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 6)
        dataset.calculate()

        assert [issue.severity for issue in dataset.issues] == [
            IssueSeverity.WARNING,
            IssueSeverity.VALIDATION_ERROR,
        ]

    @pytest.mark.parametrize(("a", "b"), [(5, 0), (5, 6), (1, -12), (-1, -2)])
    def test_validation_with_dependencies(self, bmi_protocol: ProtocolDescriptor, a: int, b: int) -> None:
        """valid-if may refer to other fields."""
        _add(bmi_protocol, reference="a")
        _add(bmi_protocol, reference="b", valid_if_expression="this < a")

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", a)
        dataset.add_value("b", b)
        dataset.calculate()

        assert len(dataset.issues) == (0 if b < a else 1)

    def test_issues_are_not_cleared_between_calculations(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Each calculate() appends; callers clear issues explicitly."""
        _add(bmi_protocol, reference="a", warning_if_expression="this > 5")

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 6)
        dataset.calculate()
        dataset.calculate()
        assert len(dataset.issues) == 2

        dataset.issues.clear()
        assert len(dataset.issues) == 0


class TestEvaluatorIdentifiers:
    """Special identifiers available to expressions."""

    def test_missing_tolerant_identifier_is_null(self, bmi_protocol: ProtocolDescriptor) -> None:
        """[name?] evaluates to null instead of failing."""
        _add(bmi_protocol, reference="a", valid_if_expression="isnull([invalid?])")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert len(dataset.issues) == 0

    def test_missing_tolerant_identifier_returns_stored_value(
        self, bmi_protocol: ProtocolDescriptor
    ) -> None:
        """[name?] returns the value when it exists."""
        _add(bmi_protocol, reference="a")
        _add(bmi_protocol, reference="b", calculated_value_expression="if(isnull([a?]), -1, [a?] * 2)")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()
        assert dataset["b"].value == -1

        dataset.add_value("a", 3)
        dataset.calculate()
        assert dataset["b"].value == 6

    def test_this_is_the_current_field(self, bmi_protocol: ProtocolDescriptor) -> None:
        """'this' is a synonym of the field reference."""
        _add(bmi_protocol, reference="a", valid_if_expression="this == 1 and this == a")
        _add(bmi_protocol, reference="b", valid_if_expression="this == 2 and this == b")

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 1)
        dataset.add_value("b", 2)
        dataset.calculate()

        assert len(dataset.issues) == 0

    def test_required_is_true_when_value_exists(self, bmi_protocol: ProtocolDescriptor) -> None:
        """'required' checks that the current field has a value."""
        _add(bmi_protocol, reference="a", valid_if_expression="required")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()
        assert len(dataset.issues) == 1

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", 1)
        dataset.calculate()
        assert len(dataset.issues) == 0

    def test_null_constant(self, bmi_protocol: ProtocolDescriptor) -> None:
        """'null' is always defined."""
        _add(bmi_protocol, reference="a", default_value_expression="null")

        dataset = DataSet(bmi_protocol)

        assert "a" in dataset
        assert dataset["a"].value is None

    def test_null_result_for_boolean_rule_is_model_error(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Rules must produce a boolean; null is a model error."""
        _add(bmi_protocol, reference="a", valid_if_expression="null")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert [issue.severity for issue in dataset.issues] == [IssueSeverity.MODEL_ERROR]

    def test_string_rule_result_uses_culture_literals(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Textual rule results are converted with the dataset culture."""
        _add(bmi_protocol, reference="a", type=TypeOfValue.STRING, valid_if_expression="this")

        dataset = DataSet(bmi_protocol)
        dataset.add_value("a", "False")
        dataset.calculate()

        assert [issue.severity for issue in dataset.issues] == [IssueSeverity.VALIDATION_ERROR]

    def test_aggregation_functions_in_expressions(self, bmi_protocol: ProtocolDescriptor) -> None:
        """count, sum and average accept values and sequences."""
        _add(bmi_protocol, reference="a", default_value_expression="4")
        _add(bmi_protocol, reference="n", calculated_value_expression="count(1, 2, a)")
        _add(
            bmi_protocol,
            reference="s",
            calculated_value_expression="sum(sequence(a))",
            enabled_if_expression="false",
        )
        _add(bmi_protocol, reference="m", calculated_value_expression="average(2, a)")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert dataset["n"].value == 3
        assert dataset["m"].value == 3.0
        assert "s" not in dataset
        assert not dataset.issues.has_errors

    def test_sum_requires_a_set(self, bmi_protocol: ProtocolDescriptor) -> None:
        """sum() of a scalar is a model error."""
        _add(bmi_protocol, reference="s", calculated_value_expression="sum(1)")

        dataset = DataSet(bmi_protocol)
        dataset.calculate()

        assert [issue.reference for issue in dataset.issues] == ["s"]


class TestSubmissionValues:
    """Persistence rows rendered from stored values."""

    def test_rows_by_value_kind(self, bmi_protocol: ProtocolDescriptor) -> None:
        """Numbers go to number, text and sequences to text, null to neither."""
        _add(bmi_protocol, reference="name", type=TypeOfValue.STRING)
        _add(bmi_protocol, reference="flag", type=TypeOfValue.BOOLEAN)
        _add(bmi_protocol, reference="list")
        _add(bmi_protocol, reference="empty")

        dataset = DataSet(bmi_protocol)
        dataset.add_value("Weight", 70)
        dataset.add_value("name", "Ann")
        dataset.add_value("flag", True)
        dataset.add_value("list", [1, 2])
        dataset.add_value("empty", None)

        rows = {row.reference: row for row in dataset.to_submission_values()}

        assert rows["Weight"].number == 70.0
        assert rows["Weight"].text is None
        assert rows["name"].text == "Ann"
        assert rows["flag"].text == "True"
        assert rows["list"].text == "[1, 2]"
        assert rows["empty"].text is None
        assert rows["empty"].number is None
        assert rows["Gender"].value == 0.0
