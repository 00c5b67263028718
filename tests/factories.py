"""Protocol factories shared by the test modules."""

from __future__ import annotations

from pathlib import Path

from blackboard.model import ListItem, ProtocolDescriptor, SectionDescriptor, ValueDescriptor

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas"

BMI_PROTOCOL_REFERENCE = "BMI"
BMI_PROTOCOL_NAME = "Body Mass Index Protocol (test)"
PHYSICAL_DATA_SECTION_NAME = "Physical Data"
WEIGHT_FIELD_ID = "Weight"
WEIGHT_FIELD_NAME = "Weight (kg)"
HEIGHT_FIELD_ID = "Height"
HEIGHT_FIELD_NAME = "Height (cm)"
GENDER_FIELD_ID = "Gender"
GENDER_FIELD_NAME = "Gender at birth"


def create_bmi_protocol() -> ProtocolDescriptor:
    """One section with weight, height and a gender list field (default 0).

    Tests decorate the fields according to what they check.
    """
    section = SectionDescriptor(name=PHYSICAL_DATA_SECTION_NAME)
    section.values.append(ValueDescriptor(reference=WEIGHT_FIELD_ID, name=WEIGHT_FIELD_NAME))
    section.values.append(ValueDescriptor(reference=HEIGHT_FIELD_ID, name=HEIGHT_FIELD_NAME))
    section.values.append(
        ValueDescriptor(
            reference=GENDER_FIELD_ID,
            name=GENDER_FIELD_NAME,
            default_value_expression="0",
            available_values=[
                ListItem(name="Male", value="0"),
                ListItem(name="Female", value="1"),
            ],
        )
    )

    protocol = ProtocolDescriptor(reference=BMI_PROTOCOL_REFERENCE, name=BMI_PROTOCOL_NAME)
    protocol.sections.append(section)
    return protocol


def check_bmi_protocol(protocol: ProtocolDescriptor) -> None:
    """Assert that a protocol is an unmodified copy of the BMI test protocol."""
    assert len(protocol.sections) == 1
    assert len(list(protocol.iter_values())) == 3
    assert protocol.validate_model() == []

    assert protocol.reference == BMI_PROTOCOL_REFERENCE
    assert protocol.name == BMI_PROTOCOL_NAME
    assert protocol.sections[0].name == PHYSICAL_DATA_SECTION_NAME

    assert protocol[WEIGHT_FIELD_ID].name == WEIGHT_FIELD_NAME
    assert protocol[HEIGHT_FIELD_ID].name == HEIGHT_FIELD_NAME
    assert protocol[GENDER_FIELD_ID].name == GENDER_FIELD_NAME


def single_field_protocol(**attributes: object) -> ProtocolDescriptor:
    """Protocol "Aggregation test" with one field "a" configured by attributes."""
    protocol = ProtocolDescriptor(reference="Aggregation test")
    section = protocol.add_section("Test")
    section.values.append(ValueDescriptor(reference="a", **attributes))
    return protocol
