from aa_gas_estimator.main import run

run()
