"""Combine several datasets of the same protocol into one aggregate dataset."""

from __future__ import annotations

import logging
from typing import Any

from blackboard.model.accumulator import DataSetValueAccumulator
from blackboard.model.aggregation import average_values, sum_values
from blackboard.model.conversions import Culture, InvalidCastError, ValueFormatError
from blackboard.model.dataset import DataSet
from blackboard.model.descriptors import ProtocolDescriptor, ValueDescriptor
from blackboard.model.enums import AggregationMode, AggregationOptions, TypeOfValue
from blackboard.model.errors import (
    CultureMismatchError,
    InvalidDataSetError,
    MissingArgumentError,
    ProtocolMismatchError,
)
from blackboard.model.evaluator import IDENTIFIER_VALUE, IDENTIFIER_VALUES, ExpressionEvaluator

logger = logging.getLogger(__name__)

# Transformed text fields are summed and averaged as numbers.
_TRANSFORMED_VALUE = ValueDescriptor(reference=IDENTIFIER_VALUE, type=TypeOfValue.DOUBLE)


class DataSetAggregator:
    """Aggregates values from datasets into a new DataSet.

    All accumulated datasets must belong to the aggregator protocol, use the
    same culture and be free of errors (warnings are allowed and are not
    copied). The aggregate dataset is validated and calculated like any other
    submission.

    Args:
        protocol: Protocol the datasets belong to.
        options: Aggregation options.

    Raises:
        MissingArgumentError: If protocol is None.
    """

    def __init__(
        self,
        protocol: ProtocolDescriptor,
        options: AggregationOptions = AggregationOptions.DEFAULT,
    ) -> None:
        if protocol is None:
            raise MissingArgumentError("protocol")

        self._protocol = protocol
        self._accumulator = DataSetValueAccumulator()
        self._culture: Culture | None = None
        self.options = options

    @property
    def protocol(self) -> ProtocolDescriptor:
        return self._protocol

    @property
    def culture(self) -> Culture | None:
        """Culture of the first accumulated dataset, None before any accumulation."""
        return self._culture

    def clear(self) -> None:
        """Forget accumulated values and the locked culture."""
        self._accumulator.clear()
        self._culture = None

    def accumulate(self, *datasets: DataSet) -> DataSetAggregator:
        """Accumulate the stored values of the given datasets.

        Datasets changed after their last calculation are calculated first.

        Returns:
            This aggregator, for chaining.

        Raises:
            MissingArgumentError: If any dataset is None.
            ProtocolMismatchError: If a dataset belongs to another protocol.
            CultureMismatchError: If datasets use different cultures.
            InvalidDataSetError: If a dataset has model or validation errors.
        """
        if any(dataset is None for dataset in datasets):
            raise MissingArgumentError("datasets")

        expected = (self._protocol.reference or "").casefold()
        for dataset in datasets:
            if (dataset.protocol.reference or "").casefold() != expected:
                raise ProtocolMismatchError(self._protocol.reference, dataset.protocol.reference)

        for dataset in datasets:
            if self._culture is None:
                self._culture = dataset.culture
            elif self._culture != dataset.culture:
                raise CultureMismatchError(self._culture.display_name, dataset.culture.display_name)

            if dataset.is_dirty:
                dataset.calculate()

            if dataset.issues.has_errors:
                raise InvalidDataSetError(dataset.protocol.reference, len(dataset.issues.errors))

            self._accumulator.add_range(dataset)

        return self

    def calculate(self) -> DataSet:
        """Build the aggregate dataset from accumulated values.

        Unless IGNORE_AGGREGATION_ERRORS is set, processing stops at the first
        field found after an error was recorded and the partial result is
        returned without being calculated.
        """
        result = DataSet(self._protocol, culture=self._culture or Culture.INVARIANT)
        if not result.is_usable:
            return result

        ignore_errors = AggregationOptions.IGNORE_AGGREGATION_ERRORS in self.options
        for descriptor in self._protocol.iter_values():
            if not descriptor.reference.strip():
                continue

            values = self._transform(result, descriptor, self._accumulator[descriptor])

            if not ignore_errors and result.issues.has_errors:
                logger.warning(
                    "Aggregation of protocol %r stopped at %r: %d error(s)",
                    self._protocol.reference,
                    descriptor.reference,
                    len(result.issues.errors),
                )
                return result

            aggregated = self._aggregate(result, descriptor, self._filter(descriptor, values))
            logger.debug(
                "Aggregated %r over %d value(s): %r", descriptor.reference, len(values), aggregated
            )
            result.add_value(descriptor, aggregated)

        result.calculate()
        return result

    def _transform(
        self, result: DataSet, descriptor: ValueDescriptor, values: tuple[Any, ...]
    ) -> list[Any]:
        expression = descriptor.transformation_for_aggregation
        if not expression.strip():
            return list(values)

        # A failed transformation yields None for that value (and a model error).
        evaluator = ExpressionEvaluator(result)
        transformed = []
        for value in values:
            evaluator.add_constant(IDENTIFIER_VALUE, value)
            evaluator.add_constant(descriptor.reference, value)
            transformed.append(evaluator.evaluate(descriptor, expression))
        return transformed

    def _filter(self, descriptor: ValueDescriptor, values: list[Any]) -> list[Any]:
        exclude_nulls = AggregationOptions.EXCLUDE_NULL_VALUES_FROM_COUNT in self.options
        if descriptor.preferred_aggregation is AggregationMode.COUNT and exclude_nulls:
            return [value for value in values if value is not None]
        return values

    def _aggregate(self, result: DataSet, descriptor: ValueDescriptor, values: list[Any]) -> Any:
        if descriptor.aggregation_expression.strip():
            evaluator = ExpressionEvaluator(result)
            evaluator.add_constant(IDENTIFIER_VALUES, values)
            return evaluator.evaluate(descriptor, descriptor.aggregation_expression)

        mode = descriptor.preferred_aggregation
        if mode is AggregationMode.NONE:
            return None

        if mode is AggregationMode.COUNT:
            return len(values)

        culture = self._culture or Culture.INVARIANT
        target = descriptor
        if (
            descriptor.type is TypeOfValue.STRING
            and descriptor.transformation_for_aggregation.strip()
        ):
            target = _TRANSFORMED_VALUE

        try:
            if mode is AggregationMode.SUM:
                return sum_values(target, culture, values)
            return average_values(target, culture, values)
        except (ValueFormatError, InvalidCastError, OverflowError) as e:
            result.issues.add_model_error(
                descriptor, f"Value '{descriptor.reference}': cannot aggregate values. {e}"
            )
            return None
